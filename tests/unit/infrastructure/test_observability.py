"""Unit tests for structured logging and correlation helpers."""

import structlog

from src.infrastructure.observability import (
    configure_structlog,
    correlation_id_processor,
    correlation_scope,
    get_correlation_id,
    set_correlation_id,
)


class TestCorrelation:
    def test_scope_sets_and_restores(self) -> None:
        set_correlation_id("")
        with correlation_scope("run-1") as correlation_id:
            assert correlation_id == "run-1"
            assert get_correlation_id() == "run-1"
        assert get_correlation_id() == ""

    def test_scope_generates_id(self) -> None:
        with correlation_scope() as correlation_id:
            assert len(correlation_id) == 36

    def test_processor_adds_id_only_when_set(self) -> None:
        set_correlation_id("")
        assert correlation_id_processor(None, "info", {"event": "x"}) == {"event": "x"}
        with correlation_scope("run-2"):
            event = correlation_id_processor(None, "info", {"event": "x"})
        assert event["correlation_id"] == "run-2"


class TestConfigureStructlog:
    def test_production_renders_json(self, capsys) -> None:
        configure_structlog("production")
        try:
            structlog.get_logger("test").info("aggregate_recomputed", constituency_id=7)
            out = capsys.readouterr().out
            assert '"event": "aggregate_recomputed"' in out
            assert '"constituency_id": 7' in out
        finally:
            structlog.reset_defaults()
