import json
import logging
from pathlib import Path

import pytest
import structlog

from ringscan.logging import configure_logging, get_logger
from ringscan.settings import ScanSettings


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def test_json_output_carries_event_fields(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(json_output=True, level="INFO")

    get_logger("ringscan.fetcher").warning("skipping over problematic token range", token=1000)

    record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert record["event"] == "skipping over problematic token range"
    assert record["token"] == 1000
    assert record["level"] == "warning"
    assert "_record" not in record


def test_driver_loggers_are_quietened() -> None:
    configure_logging(level="DEBUG")

    assert logging.getLogger("cassandra.cluster").level == logging.WARNING


def test_settings_drive_logging_configuration(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RINGSCAN_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("RINGSCAN_LOG_JSON", "true")

    ScanSettings().configure_logging()
    log = get_logger("ringscan.scanner")
    log.info("page delivered", rows=50)
    log.error("scan halted", table="revisions")

    lines = capsys.readouterr().out.strip().splitlines()
    assert logging.getLogger().level == logging.WARNING
    assert [json.loads(line)["event"] for line in lines] == ["scan halted"]
