import httpx

from sidecar.analysis.client_base import BaseCompletionClient
from sidecar.analysis.exceptions import AnalysisError, AnalysisNetworkError
from sidecar.analysis.models import CompletionOptions, ModelStatus


class OllamaClientAdapter(BaseCompletionClient):
    """On-device completion client for an Ollama server.

    This is the local tier: prompts may contain raw decrypted content and
    must only ever go to a loopback or otherwise on-device endpoint.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        model: str,
        timeout_seconds: int,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model
        self._client = httpx.AsyncClient(
            base_url=endpoint.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )

    async def complete(self, prompt: str, options: CompletionOptions) -> str:
        body: dict[str, object] = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": options.temperature,
                "top_p": options.top_p,
                "num_predict": options.max_tokens,
            },
        }
        if options.system_prompt:
            body["system"] = options.system_prompt

        try:
            response = await self._client.post("/api/generate", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise AnalysisNetworkError(
                f"Local model API error: {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AnalysisNetworkError(f"Local model network error: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise AnalysisError("Local model returned a non-JSON envelope") from exc

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise AnalysisError("Local model returned empty response")
        return text

    async def status(self) -> ModelStatus:
        """Check that Ollama is running and the configured model is pulled."""
        try:
            response = await self._client.get("/api/tags")
        except httpx.HTTPError as exc:
            return ModelStatus(available=False, model_loaded=False, error=str(exc) or type(exc).__name__)
        if response.status_code != 200:
            return ModelStatus(available=False, model_loaded=False, error="Ollama not responding")

        try:
            models = response.json().get("models") or []
        except (ValueError, AttributeError):
            models = []
        loaded = any(
            isinstance(m, dict) and self._model in str(m.get("name", ""))
            for m in models
        )
        return ModelStatus(available=True, model_loaded=loaded)

    async def aclose(self) -> None:
        await self._client.aclose()
