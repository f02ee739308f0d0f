"""Shared fixtures for the insight engine tests."""

import asyncio
import time

import pytest

from deepwork.cache import InsightCache
from deepwork.errors import GenerationUnavailable
from deepwork.models import SessionRecord, TimeWindow
from deepwork.orchestrator import InsightGenerator
from deepwork.storage import InsightStorage

DAY_START = 1_765_000_000
DAY = 24 * 60 * 60


class FakeGenerator:
    """Stands in for the LLM: records prompts and returns canned text."""

    def __init__(self, responses=None, error=None, delay=0.0):
        self.responses = list(responses or [])
        self.error = error
        self.delay = delay
        self.prompts = []

    def generate_text(self, prompt):
        self.prompts.append(prompt)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return f"Insight #{len(self.prompts)}"

    @property
    def calls(self):
        return len(self.prompts)


class AsyncFakeGenerator(FakeGenerator):
    async def generate_text(self, prompt):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return f"Async insight #{len(self.prompts)}"


def make_record(id, activity="writing", duration=1800, offset=3600,
                description=None, created_at=None, start=DAY_START):
    start_time = start + offset
    return SessionRecord(
        id=id,
        activity_type=activity,
        duration=duration,
        start_time=start_time,
        end_time=start_time + duration,
        description=description,
        created_at=created_at if created_at is not None else start_time + duration,
    )


@pytest.fixture
def day_window():
    return TimeWindow(start=DAY_START, end=DAY_START + DAY, label="Test day", kind="daily")


@pytest.fixture
def storage(tmp_path):
    return InsightStorage(str(tmp_path / "deepwork.db"))


@pytest.fixture
def cache(storage):
    return InsightCache(storage)


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def orchestrator(cache, fake_generator):
    return InsightGenerator(cache, fake_generator, timeout=5, clock=lambda: DAY_START + 2 * DAY)


@pytest.fixture
def failing_generator():
    return FakeGenerator(error=GenerationUnavailable("service down"))
