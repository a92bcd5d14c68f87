"""Abstract interface for LLM integrations."""

from typing import Protocol, TypeVar

from pydantic import BaseModel

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LLMProvider(Protocol):
    """Structured-generation capability.

    Adapters send a prompt plus the JSON schema of ``schema`` to a model and
    return the model's answer validated against that schema.
    """

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[SchemaT],
        temperature: float | None = None,
    ) -> SchemaT:
        """
        Ask the model for an object conforming to ``schema``.

        Security: adapters MUST redact secrets from the user prompt before
        it leaves the process.

        Args:
            system_prompt: Fixed instructions for the model
            user_prompt: Message-specific content
            schema: Pydantic model describing the expected object
            temperature: Sampling temperature; None uses the adapter default

        Returns:
            A validated ``schema`` instance

        Raises:
            LLMAnalysisError: If the call fails or the output does not validate
            RateLimitError: If rate limit exceeded
        """
        ...

    @property
    def model_name(self) -> str:
        """
        Return the model identifier being used.

        Recorded on every analysis as its model version.
        """
        ...
