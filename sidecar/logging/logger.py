import logging
import sys


class Log:
    """Centralized logging with structured format.

    Messages must never carry message content, original PII values or key
    material. Log ids, counts, kinds and placeholders only.
    """

    _logger: logging.Logger = logging.getLogger("sidecar")
    _audit_logger: logging.Logger = logging.getLogger("sidecar.audit")

    @classmethod
    def configure(cls, log_level: str) -> None:
        """Configure the logger with the specified level and stdout handler."""
        cls._logger.setLevel(log_level.upper())
        if not cls._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
            )
            cls._logger.addHandler(handler)
        # Audit lines propagate to "sidecar" unless a local sink is attached.
        cls._audit_logger.setLevel(log_level.upper())

    @classmethod
    def info(cls, message: str, **kwargs: object) -> None:
        """Log an info message."""
        cls._logger.info(message, extra=kwargs)

    @classmethod
    def error(cls, message: str, **kwargs: object) -> None:
        """Log an error message."""
        cls._logger.error(message, extra=kwargs)

    @classmethod
    def warning(cls, message: str, **kwargs: object) -> None:
        """Log a warning message."""
        cls._logger.warning(message, extra=kwargs)

    @classmethod
    def debug(cls, message: str, **kwargs: object) -> None:
        """Log a debug message."""
        cls._logger.debug(message, extra=kwargs)

    @classmethod
    def audit(cls, message: str, **kwargs: object) -> None:
        """Log an anonymization audit line to the local-only audit channel."""
        cls._audit_logger.info(message, extra=kwargs)

    @classmethod
    def attach_audit_sink(cls, handler: logging.Handler) -> None:
        """Route audit lines to *handler* only, not to the main stream."""
        cls._audit_logger.addHandler(handler)
        cls._audit_logger.propagate = False
