"""
Tests for data models, configuration, report sinks and target files.
"""

import base64
import io
import logging

import pytest

from ipo_checker.api.config import AppConfig
from ipo_checker.api.logging_config import ColoredFormatter, setup_logging
from ipo_checker.core.errors import CheckerError, InvalidTargetError
from ipo_checker.core.models import (
    CaptchaImage,
    CheckResult,
    CheckSession,
    CheckStatus,
    CheckSummary,
    CheckTarget,
    SessionState,
)
from ipo_checker.core.report import ConsoleReportSink, LoggingReportSink, MemoryReportSink

from main import load_targets

BOID_A = "1300000000000001"
BOID_B = "1300000000000002"


def _result(boid, status, shares=0, detail=None):
    return CheckResult(identifier=boid, label=None, status=status, share_quantity=shares, error_detail=detail)


class TestCheckTarget:

    def test_display_name(self):
        assert CheckTarget.create(BOID_A, "Mom").display_name == f"Mom ({BOID_A})"
        assert CheckTarget.create(BOID_A, "  ").display_name == BOID_A

    def test_invalid_boid(self):
        with pytest.raises(InvalidTargetError) as exc_info:
            CheckTarget.create("123")
        assert exc_info.value.identifier == "123"


class TestCaptchaImage:

    def test_from_message(self):
        payload = {"imageBase64": base64.b64encode(b"\x89PNG").decode(), "mimeType": "image/png"}

        image = CaptchaImage.from_message(payload)

        assert image.data == b"\x89PNG"
        assert image.size == 4

    def test_mime_type_defaults_to_png(self):
        image = CaptchaImage.from_message({"imageBase64": "AAAA"})

        assert image.mime_type == "image/png"

    @pytest.mark.parametrize("payload", [{}, {"imageBase64": ""}, {"imageBase64": None}])
    def test_empty_image_is_rejected(self, payload):
        with pytest.raises(CheckerError, match="empty image"):
            CaptchaImage.from_message(payload)

    def test_bad_base64(self):
        with pytest.raises(CheckerError):
            CaptchaImage.from_message({"imageBase64": "not base64!"})


class TestCheckSession:

    def test_records_in_target_order(self):
        session = CheckSession(targets=[CheckTarget.create(BOID_A), CheckTarget.create(BOID_B)])

        session.record(_result(BOID_A, CheckStatus.NOT_ALLOTTED))

        assert session.progress == 50
        with pytest.raises(CheckerError):
            session.record(_result(BOID_A, CheckStatus.NOT_ALLOTTED))

    def test_rejects_extra_results(self):
        session = CheckSession(targets=[CheckTarget.create(BOID_A)])
        session.record(_result(BOID_A, CheckStatus.SKIPPED))

        with pytest.raises(CheckerError):
            session.record(_result(BOID_B, CheckStatus.SKIPPED))

    def test_complete_builds_summary(self):
        session = CheckSession(targets=[CheckTarget.create(BOID_A), CheckTarget.create(BOID_B)])
        session.record(_result(BOID_A, CheckStatus.ALLOTTED, shares=10))
        session.record(_result(BOID_B, CheckStatus.CAPTCHA_ERROR, detail="Invalid Captcha Provided"))

        summary = session.complete()

        assert session.state == SessionState.COMPLETED
        assert session.is_complete
        assert session.finished_at is not None
        assert summary.to_dict() == {
            "total": 2,
            "allotted": 1,
            "notAllotted": 0,
            "skipped": 0,
            "captchaErrors": 1,
            "errors": 0,
            "totalShares": 10,
        }


def test_summary_counts_every_status():
    results = [
        _result(BOID_A, CheckStatus.ALLOTTED, shares=10),
        _result(BOID_A, CheckStatus.ALLOTTED, shares=20),
        _result(BOID_A, CheckStatus.NOT_ALLOTTED),
        _result(BOID_A, CheckStatus.SKIPPED),
        _result(BOID_A, CheckStatus.ERROR, detail="Timeout - no response"),
    ]

    summary = CheckSummary.from_results(results)

    assert (summary.allotted, summary.not_allotted, summary.skipped, summary.errors) == (2, 1, 1, 1)
    assert summary.total_shares == 30
    assert summary.total == 5


def test_result_to_dict():
    data = _result(BOID_A, CheckStatus.NOT_ALLOTTED).to_dict()

    assert data["boid"] == BOID_A
    assert data["status"] == "not-allotted"
    assert data["shares"] == 0


class TestAppConfig:

    def test_defaults_are_valid(self):
        config = AppConfig(
            IPO_RESULT_URL="https://iporesult.cdsc.com.np/",
            CAPTCHA_API_URL="https://captcha.example.test/api",
            MIN_PACING_DELAY=1.0,
            MAX_PACING_DELAY=3.0,
            MAX_ATTEMPTS=3,
            CAPTCHA_WAIT_SECONDS=15,
            RESULT_WAIT_SECONDS=20,
        )

        assert config.validate() == []

    def test_session_config(self):
        session_config = AppConfig(
            MAX_ATTEMPTS=4,
            CAPTCHA_WAIT_SECONDS=10,
            RESULT_WAIT_SECONDS=25,
            COMPANY_SETTLE_SECONDS=1.5,
            MIN_PACING_DELAY=2.0,
            MAX_PACING_DELAY=5.0,
        ).session_config

        assert session_config.max_attempts == 4
        assert session_config.captcha_timeout == 10
        assert session_config.result_timeout == 25
        assert session_config.company_settle_delay == 1.5
        assert (session_config.min_pacing_delay, session_config.max_pacing_delay) == (2.0, 5.0)

    @pytest.mark.parametrize("overrides", [
        {"IPO_RESULT_URL": "iporesult.cdsc.com.np"},
        {"MAX_ATTEMPTS": 0},
        {"PAGE_LOAD_ATTEMPTS": 0},
        {"MIN_PACING_DELAY": 0},
        {"MIN_PACING_DELAY": 3.0, "MAX_PACING_DELAY": 1.0},
        {"CAPTCHA_SOLVER_ENABLED": True, "CAPTCHA_API_URL": ""},
    ])
    def test_validate_reports_problems(self, overrides):
        values = dict(
            IPO_RESULT_URL="https://iporesult.cdsc.com.np/",
            CAPTCHA_API_URL="https://captcha.example.test/api",
            MIN_PACING_DELAY=1.0,
            MAX_PACING_DELAY=3.0,
            MAX_ATTEMPTS=3,
            CAPTCHA_WAIT_SECONDS=15,
            RESULT_WAIT_SECONDS=20,
        )
        values.update(overrides)

        assert len(AppConfig(**values).validate()) == 1


class TestReportSinks:

    def test_memory_sink(self):
        sink = MemoryReportSink()
        results = [_result(BOID_A, CheckStatus.ALLOTTED, shares=10)]
        summary = CheckSummary.from_results(results)

        assert sink.last_summary is None
        sink.publish(results, summary)

        assert sink.last_results == results
        assert sink.last_summary is summary

    def test_console_sink_prints_table(self):
        stream = io.StringIO()
        results = [
            _result(BOID_A, CheckStatus.ALLOTTED, shares=10),
            _result(BOID_B, CheckStatus.ERROR, detail="Timeout - no response"),
        ]

        ConsoleReportSink(stream).publish(results, CheckSummary.from_results(results))

        output = stream.getvalue()
        assert "10 shares" in output
        assert "Timeout - no response" in output
        assert "Allotted: 1" in output

    def test_logging_sink_logs_failures(self, caplog):
        results = [_result(BOID_B, CheckStatus.ERROR, detail="BOID input not found")]

        with caplog.at_level(logging.INFO, logger="ipo_checker"):
            LoggingReportSink().publish(results, CheckSummary.from_results(results))

        assert "BOID input not found" in caplog.text


class TestLogging:

    def test_setup_logging_writes_files(self, tmp_path):
        logger = setup_logging("ipo_checker_test", level="DEBUG", log_dir=str(tmp_path))
        logger.error("boom")

        for handler in logger.handlers:
            handler.flush()
        assert "boom" in (tmp_path / "ipo_checker_test.log").read_text()
        assert "boom" in (tmp_path / "ipo_checker_test_errors.log").read_text()

        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)

    def test_colored_formatter_keeps_record_intact(self):
        record = logging.LogRecord("ipo_checker", logging.WARNING, __file__, 1, "careful", None, None)

        output = ColoredFormatter("%(levelname)s %(message)s").format(record)

        assert "careful" in output
        assert record.levelname == "WARNING"


class TestTargetFiles:

    def test_yaml_list(self, tmp_path):
        path = tmp_path / "boids.yaml"
        path.write_text(f"- {BOID_A}\n- boid: '{BOID_B}'\n  label: Dad\n")

        assert load_targets(str(path)) == [int(BOID_A), {"boid": BOID_B, "label": "Dad"}]

    def test_yaml_mapping(self, tmp_path):
        path = tmp_path / "boids.yml"
        path.write_text(f"boids:\n  - '{BOID_A}'\n")

        assert load_targets(str(path)) == [BOID_A]

    def test_text_file(self, tmp_path):
        path = tmp_path / "boids.txt"
        path.write_text(f"# family\n{BOID_A}, Mom\n\n{BOID_B}\n")

        assert load_targets(str(path)) == [(BOID_A, "Mom"), (BOID_B, None)]
