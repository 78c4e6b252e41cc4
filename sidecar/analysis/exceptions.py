class AnalysisError(Exception):
    """Raised when an analysis call fails."""


class AnalysisNetworkError(AnalysisError):
    """Raised when a model provider call fails due to network/infrastructure issues."""


class AnalysisUnavailable(AnalysisError):
    """Upstream model unreachable or its output unusable.

    Absorbed at the router boundary and converted into a default result.
    """


class PolicyViolation(Exception):
    """Raised when content not produced by anonymization is routed to the remote tier.

    A programming defect, never absorbed or retried.
    """
