from sidecar.config.settings import Settings
from sidecar.crypto.aes_gcm_custodian import AesGcmKeyCustodian
from sidecar.crypto.base import BaseKeyCustodian


class KeyCustodianFactory:
    """Creates the configured key custodian."""

    @classmethod
    def create(cls, settings: Settings) -> BaseKeyCustodian:
        """Create an AES-GCM custodian; locked when no key is configured."""
        return AesGcmKeyCustodian.from_encoded_key(
            settings.encryption_key.get_secret_value().strip()
        )
