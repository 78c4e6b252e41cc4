from sidecar.analysis.client_base import BaseCompletionClient
from sidecar.analysis.factory import CompletionClientFactory, build_router
from sidecar.analysis.result import AnalysisOutcome
from sidecar.analysis.router import TrustTierRouter

__all__ = [
    "AnalysisOutcome",
    "BaseCompletionClient",
    "CompletionClientFactory",
    "TrustTierRouter",
    "build_router",
]
