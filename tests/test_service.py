"""Tests for window resolution and storage wiring in InsightService."""

import asyncio
from datetime import datetime

import pytest

from deepwork.config import ConfigManager
from deepwork.errors import GenerationUnavailable
from deepwork.orchestrator import InsightGenerator
from deepwork.service import InsightService, build_service

from conftest import FakeGenerator

# Wednesday; the latest completed week is Dec 1-7
REFERENCE = datetime(2025, 12, 10, 14, 30)


def ts(*args):
    return int(datetime(*args).timestamp())


def add(storage, activity, minutes, when, description=None):
    start = ts(*when)
    return storage.save_session(activity, minutes * 60, start, start + minutes * 60, description)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def service(storage, cache, generator):
    return InsightService(storage, InsightGenerator(cache, generator, timeout=5))


class TestInsightService:
    def test_weekly_insight_uses_window_sessions(self, service, storage, generator):
        add(storage, "writing", 90, (2025, 12, 2, 9), "Outlined the proposal")
        add(storage, "reading", 30, (2025, 12, 5, 15))
        add(storage, "writing", 60, (2025, 12, 9, 9))

        result = asyncio.run(service.insight_for("weekly", REFERENCE))

        assert result.text == "Insight #1"
        assert result.window.label == "Dec 01 - Dec 07, 2025"
        prompt = generator.prompts[0]
        assert "- Sessions Completed: 2" in prompt
        assert "1. writing: 1.5h" in prompt

    def test_weekly_prompt_compares_with_previous_week(self, service, storage, generator):
        add(storage, "writing", 60, (2025, 11, 25, 9))
        add(storage, "writing", 60, (2025, 12, 2, 9))
        add(storage, "writing", 60, (2025, 12, 3, 9))

        asyncio.run(service.insight_for("weekly", REFERENCE))

        assert "Session Count: +1" in generator.prompts[0]

    def test_second_request_served_from_cache(self, service, storage, generator):
        add(storage, "writing", 60, (2025, 12, 9, 9))
        asyncio.run(service.insight_for("daily", REFERENCE))
        result = asyncio.run(service.insight_for("daily", REFERENCE))

        assert result.from_cache
        assert generator.calls == 1

    def test_added_session_triggers_regeneration(self, service, storage, generator):
        add(storage, "writing", 60, (2025, 12, 9, 9))
        asyncio.run(service.insight_for("daily", REFERENCE))
        add(storage, "reading", 30, (2025, 12, 9, 13))
        result = asyncio.run(service.insight_for("daily", REFERENCE))

        assert not result.from_cache
        assert generator.calls == 2

    def test_activity_insight_filters_activity(self, service, storage, generator):
        add(storage, "writing", 60, (2025, 12, 9, 9))
        add(storage, "reading", 45, (2025, 12, 10, 8))

        result = asyncio.run(service.insight_for("activity", REFERENCE, activity="reading"))

        assert result.window.cache_kind == "activity_reading"
        assert "writing" not in generator.prompts[0]

    def test_containing_window(self, service):
        window = service.window("daily", REFERENCE, containing=True)
        assert window.start == ts(2025, 12, 10)

    def test_summary_without_generation(self, service, storage, generator):
        add(storage, "writing", 90, (2025, 12, 9, 9), "Chapter three")
        summary = asyncio.run(service.summary_for("daily", REFERENCE))

        assert summary.total_sessions == 1
        assert summary.total_hours == 1.5
        assert generator.calls == 0

    def test_summary_for_explicit_window(self, service, storage):
        add(storage, "writing", 60, (2025, 12, 2, 9))
        add(storage, "reading", 30, (2025, 12, 9, 9))
        window = service.window("daily", datetime(2025, 12, 2, 12), containing=True)

        summary = asyncio.run(service.summary_for("daily", REFERENCE, window=window))

        assert summary.total_sessions == 1
        assert summary.activities[0].activity == "writing"

    def test_failure_without_cache_propagates(self, storage, cache):
        service = InsightService(storage, InsightGenerator(
            cache, FakeGenerator(error=GenerationUnavailable("down")), timeout=5
        ))
        with pytest.raises(GenerationUnavailable):
            asyncio.run(service.insight_for("daily", REFERENCE))

    def test_purge_cache(self, service, storage):
        asyncio.run(service.insight_for("daily", REFERENCE))
        assert storage.count_cached_insights() == 1
        assert asyncio.run(service.purge_cache(0)) == 1


class TestBuildService:
    def test_wires_configuration(self, tmp_path):
        path = tmp_path / "config.yaml"
        manager = ConfigManager(path)
        manager.config.storage.data_dir = str(tmp_path / "data")
        manager.config.generation.timeout_seconds = 12
        manager.config.insights.activity_window_days = 14

        service = build_service(manager)

        assert service.storage.db_path == str(tmp_path / "data" / "deepwork.db")
        assert service.orchestrator.timeout == 12
        assert service.activity_days == 14
        assert service.orchestrator.generator.timeout == manager.config.generation.request_timeout_seconds
        assert service.orchestrator.generator.deadline == 12
        assert service.orchestrator.generator.min_request_interval == 1.0
