"""Anthropic Claude LLM adapter.

This module implements the LLMProvider protocol for Anthropic's Claude models.

Security features:
- Secret redaction of message content BEFORE all API calls (fail-closed)
- Output validation against the caller's Pydantic schema
- Structured prompts with clear system/user boundaries
- Output length limits enforced
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import anthropic
import structlog
from pydantic import ValidationError

from ...utils.async_helpers import LLMAnalysisError, RateLimitError, TimeoutError
from ...utils.security import RedactionError, SecretRedactor, SecurityError

if TYPE_CHECKING:
    from ...config.schema import AnthropicConfig
    from ...interfaces.llm import SchemaT

log = structlog.get_logger()

# Maximum response length in characters
MAX_RESPONSE_LENGTH = 20000


class AnthropicAdapter:
    """Anthropic LLM adapter implementing the LLMProvider protocol.

    Example:
        config = AnthropicConfig(api_key="sk-ant-...")
        adapter = AnthropicAdapter(config)

        result = await adapter.generate_structured(system, prompt, MessageAnalysisSchema)
        print(result.severity_score)
    """

    def __init__(
        self,
        config: AnthropicConfig,
        redactor: SecretRedactor | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        """Initialize the Anthropic adapter.

        Args:
            config: Anthropic-specific configuration.
            redactor: Secret redactor. If None, creates default.
            client: Preconfigured SDK client. If None, one is created from config.
        """
        self._config = config
        self._redactor = redactor or SecretRedactor()
        self._client = client or anthropic.AsyncAnthropic(api_key=config.api_key)

    @property
    def model_name(self) -> str:
        """Return the model identifier being used."""
        return self._config.model

    def _redact_text(self, text: str) -> str:
        """Redact secrets from text, failing closed on error.

        Raises:
            SecurityError: If redaction fails.
        """
        try:
            return self._redactor.redact(text)
        except RedactionError as e:
            log.error("redaction_failed_blocking_llm_call", error=str(e))
            raise SecurityError(f"Cannot send to LLM: redaction failed: {e}") from e

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[SchemaT],
        temperature: float | None = None,
    ) -> SchemaT:
        """Ask Claude for a JSON object matching ``schema``.

        Security: The user prompt is redacted before sending to the API.

        Args:
            system_prompt: Fixed instructions.
            user_prompt: Message-specific content (will be redacted).
            schema: Pydantic model the response must validate against.
            temperature: Sampling temperature; None uses the configured value.

        Returns:
            Validated schema instance.

        Raises:
            LLMAnalysisError: If the call fails or the output does not validate.
            SecurityError: If redaction fails.
            RateLimitError: If rate limit exceeded.
            TimeoutError: If request times out.
        """
        redacted_prompt = self._redact_text(user_prompt)
        json_schema = json.dumps(schema.model_json_schema(), indent=2)

        user_content = f"""{redacted_prompt}

<output_format>
Respond with ONLY valid JSON matching this JSON schema:

{json_schema}

Do not include any text outside the JSON object.
</output_format>"""

        try:
            response = await self._client.messages.create(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature if temperature is None else temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_content}],
            )
        except anthropic.RateLimitError as e:
            log.warning("anthropic_rate_limit", error=str(e))
            raise RateLimitError(f"Anthropic rate limit exceeded: {e}") from e
        except anthropic.APITimeoutError as e:
            log.error("anthropic_timeout", error=str(e))
            raise TimeoutError(f"Anthropic request timed out: {e}") from e
        except anthropic.APIError as e:
            log.error("anthropic_api_error", error=str(e))
            raise LLMAnalysisError(f"Anthropic API error: {e}") from e

        response_text = ""
        for block in response.content:
            if hasattr(block, "text"):
                response_text += block.text

        if len(response_text) > MAX_RESPONSE_LENGTH:
            raise LLMAnalysisError(f"Response exceeds maximum length: {len(response_text)}")

        return self._parse_and_validate_json(response_text, schema)

    def _parse_and_validate_json(self, response_text: str, model: type[SchemaT]) -> SchemaT:
        """Parse and validate JSON response against Pydantic model.

        Raises:
            LLMAnalysisError: If parsing or validation fails.
        """
        text = response_text.strip()

        # Handle markdown code blocks
        if text.startswith("```"):
            lines = text.split("\n")
            end = len(lines)
            for i in range(len(lines) - 1, 0, -1):
                if lines[i].strip() == "```":
                    end = i
                    break
            text = "\n".join(lines[1:end])

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            log.error("json_parse_error", error=str(e), response_preview=text[:200])
            raise LLMAnalysisError(f"Invalid JSON in LLM response: {e}") from e

        try:
            return model.model_validate(data)
        except ValidationError as e:
            log.error("validation_error", error=str(e))
            raise LLMAnalysisError(f"LLM response failed validation: {e}") from e
