class AnonymizationError(Exception):
    """Raised when entity detection or placeholder substitution fails."""
