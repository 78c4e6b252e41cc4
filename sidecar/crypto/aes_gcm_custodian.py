"""AES-256-GCM key custodian.

Holds the content key in process memory and performs the authenticated
encryption primitive. A custodian built without a key behaves like a locked
keychain: every call raises KeyUnavailableError.
"""

import base64
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sidecar.crypto.base import BaseKeyCustodian
from sidecar.crypto.exceptions import KeyUnavailableError
from sidecar.crypto.models import TAG_SIZE

KEY_SIZE = 32


class AesGcmKeyCustodian(BaseKeyCustodian):
    """Key custodian backed by cryptography's AESGCM."""

    def __init__(self, key: bytes | None = None) -> None:
        if key is not None and len(key) != KEY_SIZE:
            raise ValueError(f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aead: AESGCM | None = AESGCM(key) if key is not None else None

    @classmethod
    def from_encoded_key(cls, encoded_key: str) -> "AesGcmKeyCustodian":
        """Build a custodian from a urlsafe base64 key; empty string means locked."""
        if not encoded_key:
            return cls(None)
        try:
            key = base64.urlsafe_b64decode(encoded_key.encode("ascii"))
        except (ValueError, UnicodeEncodeError) as exc:
            raise ValueError("Encryption key is not valid urlsafe base64") from exc
        return cls(key)

    @staticmethod
    def generate_key() -> str:
        """Generate a new urlsafe base64 encoded 256-bit key.

        Store the result in the SIDECAR encryption_key setting (or the OS
        keychain that feeds it).
        """
        return base64.urlsafe_b64encode(os.urandom(KEY_SIZE)).decode("ascii")

    @property
    def is_unlocked(self) -> bool:
        return self._aead is not None

    async def encrypt_primitive(self, plaintext: bytes, iv: bytes) -> tuple[bytes, bytes]:
        aead = self._require_key()
        sealed = aead.encrypt(iv, plaintext, None)
        return sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]

    async def decrypt_primitive(self, ciphertext: bytes, iv: bytes, auth_tag: bytes) -> bytes:
        aead = self._require_key()
        return aead.decrypt(iv, ciphertext + auth_tag, None)

    def _require_key(self) -> AESGCM:
        if self._aead is None:
            raise KeyUnavailableError("Encryption key is not available")
        return self._aead
