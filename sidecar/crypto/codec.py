"""Envelope codec for stored sensitive content.

Storage format (stable, versionless):

    base64(iv) ":" base64(auth_tag) ":" base64(ciphertext)

The three segments use standard base64. The iv and tag segments must be
non-empty and exactly NONCE_SIZE / TAG_SIZE bytes. The ciphertext segment is
empty only for an empty plaintext. Nothing here ever logs plaintext or key
material, on success or error paths.
"""

import base64
import binascii
import hashlib

from cryptography.exceptions import InvalidTag

from sidecar.crypto.base import BaseKeyCustodian
from sidecar.crypto.exceptions import (
    CryptoFailure,
    FormatFailure,
    IntegrityFailure,
    KeyUnavailableError,
)
from sidecar.crypto.models import NONCE_SIZE, TAG_SIZE, EncryptedEnvelope

_SEPARATOR = ":"


def encode(envelope: EncryptedEnvelope) -> str:
    """Encode an envelope as a single ``iv:tag:ciphertext`` string."""
    return _SEPARATOR.join(
        base64.b64encode(part).decode("ascii")
        for part in (envelope.iv, envelope.auth_tag, envelope.ciphertext)
    )


def decode(stored: str) -> EncryptedEnvelope:
    """Parse a stored string back into an envelope.

    Raises:
        FormatFailure: on anything other than three decodable segments with
            a well-sized iv and tag.
    """
    if not isinstance(stored, str):
        raise FormatFailure("Stored envelope must be a string")
    parts = stored.split(_SEPARATOR)
    if len(parts) != 3:
        raise FormatFailure(f"Expected 3 envelope segments, got {len(parts)}")

    iv_text, tag_text, ciphertext_text = parts
    if not iv_text or not tag_text:
        raise FormatFailure("Envelope iv and tag segments must be non-empty")

    iv = _decode_segment(iv_text, "iv")
    auth_tag = _decode_segment(tag_text, "tag")
    ciphertext = _decode_segment(ciphertext_text, "ciphertext")

    if len(iv) != NONCE_SIZE:
        raise FormatFailure(f"Envelope iv must be {NONCE_SIZE} bytes, got {len(iv)}")
    if len(auth_tag) != TAG_SIZE:
        raise FormatFailure(f"Envelope tag must be {TAG_SIZE} bytes, got {len(auth_tag)}")
    return EncryptedEnvelope(iv=iv, auth_tag=auth_tag, ciphertext=ciphertext)


async def seal(plaintext: str, custodian: BaseKeyCustodian) -> EncryptedEnvelope:
    """Encrypt *plaintext* under a fresh nonce.

    Raises:
        CryptoFailure: if the key capability is unavailable or fails.
    """
    try:
        iv = custodian.new_nonce()
        ciphertext, auth_tag = await custodian.encrypt_primitive(
            plaintext.encode("utf-8"), iv
        )
    except KeyUnavailableError as exc:
        raise CryptoFailure("Encryption key unavailable") from exc
    except Exception as exc:
        raise CryptoFailure(f"Encryption failed: {type(exc).__name__}") from exc
    return EncryptedEnvelope(iv=iv, auth_tag=auth_tag, ciphertext=ciphertext)


async def open_envelope(envelope: EncryptedEnvelope, custodian: BaseKeyCustodian) -> str:
    """Verify and decrypt *envelope*.

    Raises:
        IntegrityFailure: if the tag does not verify.
        CryptoFailure: if the key capability is unavailable or fails.
    """
    try:
        plaintext = await custodian.decrypt_primitive(
            envelope.ciphertext, envelope.iv, envelope.auth_tag
        )
    except InvalidTag as exc:
        raise IntegrityFailure("Envelope authentication failed") from exc
    except KeyUnavailableError as exc:
        raise CryptoFailure("Encryption key unavailable") from exc
    except Exception as exc:
        raise CryptoFailure(f"Decryption failed: {type(exc).__name__}") from exc

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FormatFailure("Envelope plaintext is not valid UTF-8") from exc


async def seal_for_storage(plaintext: str, custodian: BaseKeyCustodian) -> str:
    """Seal and encode in one step, ready for an opaque storage field."""
    return encode(await seal(plaintext, custodian))


async def open_from_storage(stored: str, custodian: BaseKeyCustodian) -> str:
    """Decode and open a stored string; never attempts a partial decrypt."""
    return await open_envelope(decode(stored), custodian)


async def reseal(
    stored: str,
    source: BaseKeyCustodian,
    target: BaseKeyCustodian,
) -> str:
    """Re-encrypt a stored envelope under *target* (key rotation).

    Integrity and format failures propagate; nothing is re-sealed from a
    tampered envelope.
    """
    plaintext = await open_from_storage(stored, source)
    return await seal_for_storage(plaintext, target)


def hash_content(content: str) -> str:
    """SHA-256 hex digest of *content*, used to de-duplicate stored items."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _decode_segment(segment: str, name: str) -> bytes:
    try:
        return base64.b64decode(segment, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise FormatFailure(f"Envelope {name} segment is not valid base64") from exc
