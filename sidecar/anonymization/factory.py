from sidecar.anonymization.resolver import EntityResolver
from sidecar.anonymization.session import AnonymizationSession
from sidecar.config.settings import Settings


class AnonymizationSessionFactory:
    """Creates anonymization sessions that share one entity resolver."""

    def __init__(self, settings: Settings, resolver: EntityResolver | None = None) -> None:
        self._min_fragment_length = settings.anonymization_min_fragment_length
        self._resolver = resolver if resolver is not None else EntityResolver()

    def create(self) -> AnonymizationSession:
        """Create a fresh, empty session for one situation."""
        return AnonymizationSession(
            self._resolver,
            min_fragment_length=self._min_fragment_length,
        )
