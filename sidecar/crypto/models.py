from dataclasses import dataclass

NONCE_SIZE = 12
TAG_SIZE = 16


@dataclass(frozen=True)
class EncryptedEnvelope:
    """One sealed unit of stored content."""

    iv: bytes  # random nonce, never reused with the same key
    auth_tag: bytes
    ciphertext: bytes

    def __repr__(self) -> str:
        return (
            f"EncryptedEnvelope(iv=<{len(self.iv)} bytes>, "
            f"auth_tag=<{len(self.auth_tag)} bytes>, "
            f"ciphertext=<{len(self.ciphertext)} bytes>)"
        )
