"""Security utilities for secret redaction and log hygiene.

Community chat messages routinely contain pasted credentials. Everything
that leaves the process for an LLM, and everything written to logs, goes
through ``SecretRedactor`` first. Redaction fails closed: a pattern error
raises instead of passing text through untouched.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Sequence

log = structlog.get_logger()


class SecurityError(Exception):
    """Base exception for security-related errors."""


class RedactionError(SecurityError):
    """Raised when secret redaction fails."""


class SecretRedactor:
    """Detects and redacts secrets from text.

    Usage:
        redactor = SecretRedactor()
        safe_text = redactor.redact(potentially_sensitive_text)
    """

    DEFAULT_PATTERNS: tuple[tuple[str, str], ...] = (
        (
            r"(?i)(api[_-]?key|secret|token|password|credential)\s*[=:]\s*[\"']?[\w-]{16,}",
            "Generic secret",
        ),
        (r"[MN][A-Za-z\d]{23,25}\.[\w-]{6}\.[\w-]{27,38}", "Discord bot token"),
        (
            r"https://(?:ptb\.|canary\.)?discord(?:app)?\.com/api/webhooks/\d+/[\w-]+",
            "Discord webhook URL",
        ),
        (r"xox[baprs]-[\w-]+", "Slack token"),
        (r"ghp_[a-zA-Z0-9]{36}", "GitHub PAT"),
        (r"github_pat_[a-zA-Z0-9_]{22,}", "GitHub fine-grained PAT"),
        (r"sk-ant-[\w-]{40,}", "Anthropic API key"),
        (r"sk-proj-[a-zA-Z0-9]{20,}", "OpenAI project API key"),
        (r"sk-[a-zA-Z0-9]{48}", "OpenAI legacy API key"),
        (r"AKIA[0-9A-Z]{16}", "AWS access key ID"),
        (r"sk_live_[a-zA-Z0-9]{24,}", "Stripe secret key"),
        (
            r"(?i)(postgres(?:ql)?|mysql|mongodb(?:\+srv)?|redis)://[^:\s]+:[^@\s]+@[^\s]+",
            "Database connection string",
        ),
        (r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----", "Private key header"),
        (r"eyJ[a-zA-Z0-9_-]*\.eyJ[a-zA-Z0-9_-]*\.[a-zA-Z0-9_-]*", "JWT token"),
    )

    def __init__(
        self,
        placeholder: str = "[REDACTED]",
        custom_patterns: Sequence[tuple[str, str]] | None = None,
    ) -> None:
        """Compile the pattern set.

        Raises:
            RedactionError: If any pattern fails to compile.
        """
        self.placeholder = placeholder
        self._pattern_names: dict[re.Pattern[str], str] = {}

        all_patterns = list(self.DEFAULT_PATTERNS)
        if custom_patterns:
            all_patterns.extend(custom_patterns)

        for pattern_str, name in all_patterns:
            try:
                self._pattern_names[re.compile(pattern_str)] = name
            except re.error as e:
                log.error("pattern_compilation_failed", pattern=pattern_str, error=str(e))
                raise RedactionError(f"Failed to compile secret pattern '{name}': {e}") from e

    @property
    def patterns(self) -> list[re.Pattern[str]]:
        """Return the list of compiled patterns."""
        return list(self._pattern_names)

    def redact(self, text: str) -> str:
        """Replace every detected secret with the placeholder.

        Raises:
            RedactionError: If redaction fails for any reason.
        """
        if not text:
            return text

        try:
            result = text
            for pattern in self._pattern_names:
                result = pattern.sub(self.placeholder, result)
            return result
        except Exception as e:
            log.error("redaction_failed", error=str(e))
            raise RedactionError(f"Redaction failed: {e}") from e
