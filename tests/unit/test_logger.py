import logging
from collections.abc import Generator

import pytest

from sidecar.logging.logger import Log


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.messages: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.messages.append(record.getMessage())


@pytest.fixture()
def audit_sink() -> Generator[_ListHandler, None, None]:
    handler = _ListHandler()
    audit_logger = logging.getLogger("sidecar.audit")
    previous_level = audit_logger.level
    audit_logger.setLevel(logging.INFO)
    Log.attach_audit_sink(handler)
    try:
        yield handler
    finally:
        audit_logger.removeHandler(handler)
        audit_logger.propagate = True
        audit_logger.setLevel(previous_level)


class TestLog:
    def test_configure_sets_level_and_single_handler(self) -> None:
        logger = logging.getLogger("sidecar")
        Log.configure("debug")
        Log.configure("debug")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_info_goes_to_sidecar_logger(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="sidecar")
        Log.info("Situation s1 analyzed")
        assert any(r.name == "sidecar" and r.getMessage() == "Situation s1 analyzed" for r in caplog.records)

    def test_audit_sink_receives_audit_lines_only(
        self, audit_sink: _ListHandler, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO)
        Log.audit("replaced 1 entities ([PERSON_1])")
        Log.info("regular line")
        assert audit_sink.messages == ["replaced 1 entities ([PERSON_1])"]
        assert all(r.name != "sidecar.audit" for r in caplog.records)
