from abc import ABC, abstractmethod

from sidecar.analysis.models import CompletionOptions, ModelStatus


class BaseCompletionClient(ABC):
    """Contract for provider-specific LLM completion clients."""

    @abstractmethod
    async def complete(self, prompt: str, options: CompletionOptions) -> str:
        """Return the model's response as plain text.

        The text is not guaranteed to be well-formed JSON even when the
        prompt asked for JSON.

        Raises:
            AnalysisError: on any provider failure.
        """

    async def status(self) -> ModelStatus:
        """Report backend reachability; clients without a probe report ready."""
        return ModelStatus(available=True, model_loaded=True)
