"""Example completion client adapter.

Use this module as a reference when implementing new provider adapters.
Implement BaseCompletionClient and register the provider in
CompletionClientFactory.
"""

from typing import ClassVar

from sidecar.analysis.client_base import BaseCompletionClient
from sidecar.analysis.models import CompletionOptions


class ExampleClientAdapter(BaseCompletionClient):
    """Example adapter that replies with a fixed response.

    No network calls. Useful for local development, tests, and as a template
    for building real provider adapters. Every prompt it receives is kept in
    ``prompts`` so callers can check what crossed the boundary.
    """

    DEFAULT_RESPONSE: ClassVar[str] = "{}"

    def __init__(self, response: str | None = None) -> None:
        self._response = response if response is not None else self.DEFAULT_RESPONSE
        self.prompts: list[str] = []

    async def complete(self, prompt: str, options: CompletionOptions) -> str:
        _ = options
        self.prompts.append(prompt)
        return self._response
