import os
from abc import ABC, abstractmethod

from sidecar.crypto.models import NONCE_SIZE


class BaseKeyCustodian(ABC):
    """Contract for the component that owns the encryption key.

    The codec only ever calls through this interface; key material never
    leaves the custodian.
    """

    def new_nonce(self) -> bytes:
        """Return a fresh random nonce.

        Custodians that manage nonces themselves override this. The default
        generates one locally.
        """
        return os.urandom(NONCE_SIZE)

    @abstractmethod
    async def encrypt_primitive(self, plaintext: bytes, iv: bytes) -> tuple[bytes, bytes]:
        """Encrypt *plaintext* under *iv*.

        Returns:
            (ciphertext, auth_tag)

        Raises:
            KeyUnavailableError: if secure storage is locked or absent.
        """

    @abstractmethod
    async def decrypt_primitive(self, ciphertext: bytes, iv: bytes, auth_tag: bytes) -> bytes:
        """Verify *auth_tag* and return the plaintext bytes.

        Raises:
            KeyUnavailableError: if secure storage is locked or absent.
            cryptography.exceptions.InvalidTag: on tag mismatch.
        """
