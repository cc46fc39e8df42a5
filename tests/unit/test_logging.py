"""Unit tests for the logging abstraction and correlation IDs."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from kaleido_controller.correlation import correlation_context, generate_correlation_id, get_correlation_id
from kaleido_controller.logging_abstraction import (
    HumanReadableFormatter,
    JSONFormatter,
    KaleidoLogger,
    set_package_level,
)


def make_record(msg: str = "Layout recalled", extra: dict[str, object] | None = None) -> logging.LogRecord:
    record = logging.LogRecord("kaleido_controller.test", logging.INFO, __file__, 10, msg, None, None)
    if extra is not None:
        record.extra_data = extra
    return record


class TestCorrelation:
    def test_command_ids_carry_the_sequence(self) -> None:
        assert re.fullmatch(r"0042-[0-9a-f]{8}", generate_correlation_id(42))
        assert re.fullmatch(r"run-[0-9a-f]{8}", generate_correlation_id())

    def test_nested_scopes_restore_outer_id(self) -> None:
        assert get_correlation_id() is None
        with correlation_context("run-outer"):
            with correlation_context("0001-inner") as inner:
                assert inner == "0001-inner"
                assert get_correlation_id() == "0001-inner"
            assert get_correlation_id() == "run-outer"
        assert get_correlation_id() is None

    def test_scope_generates_run_id(self) -> None:
        with correlation_context() as cid:
            assert cid.startswith("run-")
            assert get_correlation_id() == cid


class TestFormatters:
    def test_json_includes_context_and_correlation_id(self) -> None:
        with correlation_context("0007-abc123"):
            output = JSONFormatter().format(make_record(extra={"room": "A"}))
        data = json.loads(output)
        assert data["message"] == "Layout recalled"
        assert data["level"] == "INFO"
        assert data["correlation_id"] == "0007-abc123"
        assert data["context"] == {"room": "A"}

    def test_json_without_context(self) -> None:
        data = json.loads(JSONFormatter().format(make_record()))
        assert "context" not in data
        assert data["correlation_id"] is None

    def test_human_appends_context(self) -> None:
        with correlation_context("0007-abc123"):
            output = HumanReadableFormatter().format(make_record(extra={"room": "A", "layout": "Wall.kg2"}))
        assert "[0007-abc123] > Layout recalled" in output
        assert output.endswith("Layout recalled | room=A | layout=Wall.kg2")

    def test_human_without_correlation_id(self) -> None:
        output = HumanReadableFormatter().format(make_record())
        assert output.endswith("[-] > Layout recalled")


class TestKaleidoLogger:
    def test_json_file_output(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "kaleido.json"
        logger = KaleidoLogger("kaleido_controller.test_json_file", log_format="json", json_file=log_file)
        logger.info("Queued %s", "<getKRoomList/>", extra={"depth": 1})
        for handler in logger.handlers:
            handler.flush()

        data = json.loads(log_file.read_text().splitlines()[-1])
        assert data["message"] == "Queued <getKRoomList/>"
        assert data["context"] == {"depth": 1}
        assert data["location"].startswith("test_logging:")

    def test_exception_includes_traceback(self, tmp_path: Path) -> None:
        log_file = tmp_path / "errors.json"
        logger = KaleidoLogger("kaleido_controller.test_exception", log_format="json", json_file=log_file)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logger.exception("Status callback failed")
        for handler in logger.handlers:
            handler.flush()

        data = json.loads(log_file.read_text().splitlines()[-1])
        assert data["level"] == "ERROR"
        assert "RuntimeError: boom" in data["exception"]

    def test_handlers_configured_once(self) -> None:
        first = KaleidoLogger("kaleido_controller.test_once", human_output="stderr")
        second = KaleidoLogger("kaleido_controller.test_once", human_output="stderr")
        assert len(second.handlers) == 1
        assert first.handlers == second.handlers

    def test_set_package_level(self) -> None:
        logger = KaleidoLogger("kaleido_controller.test_levels", human_output="stderr")
        other = logging.getLogger("unrelated_package.test_levels")
        other.setLevel(logging.WARNING)

        set_package_level(logging.DEBUG)

        assert logger.logger.level == logging.DEBUG
        assert all(h.level == logging.DEBUG for h in logger.handlers)
        assert other.level == logging.WARNING
        set_package_level(logging.INFO)
