"""Unit tests for structured logging."""

import json
import logging

from insightforge_core.observability import JsonFormatter, RunContext, get_logger


def _record(msg: str = "hello", level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("insightforge.test", level, __file__, 10, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_basic_fields(self):
        line = json.loads(JsonFormatter(service_name="insightforge-worker").format(_record()))

        assert line["message"] == "hello"
        assert line["level"] == "INFO"
        assert line["service"] == "insightforge-worker"
        assert "source" not in line

    def test_extra_fields_and_source_on_warning(self):
        line = json.loads(JsonFormatter().format(_record(level=logging.WARNING, run_id=7, obj=object())))

        assert line["run_id"] == 7
        assert isinstance(line["obj"], str)
        assert line["source"]["line"] == 10


class TestRunContext:
    def test_to_dict_skips_empty(self):
        assert RunContext(run_id=1).to_dict() == {"run_id": 1}

    def test_with_stage_copies(self):
        ctx = RunContext(run_id=1, user_id=2, task_id="t", extra={"k": "v"})

        staged = ctx.with_stage("scrape")

        assert staged.to_dict() == {"run_id": 1, "user_id": 2, "task_id": "t", "stage": "scrape", "k": "v"}
        assert ctx.stage is None


class TestStructuredLogger:
    def test_context_becomes_record_fields(self, caplog):
        logger = get_logger("insightforge.test.structured")

        with caplog.at_level(logging.INFO, logger="insightforge.test.structured"):
            logger.info("Scraped posts", context=RunContext(run_id=5, stage="scrape"), posts=3)

        record = caplog.records[-1]
        assert record.run_id == 5
        assert record.stage == "scrape"
        assert record.posts == 3

    def test_loggers_are_cached(self):
        assert get_logger("insightforge.a") is get_logger("insightforge.a")
