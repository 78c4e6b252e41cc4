class CryptoError(Exception):
    """Base exception for envelope sealing and opening."""


class CryptoFailure(CryptoError):
    """Raised when the key capability is unavailable or the primitive fails."""


class IntegrityFailure(CryptoError):
    """Raised when an envelope's authentication tag does not verify."""


class FormatFailure(CryptoError):
    """Raised when a stored envelope string cannot be parsed."""


class KeyUnavailableError(Exception):
    """Raised by a key custodian when its secure storage is locked or absent."""
