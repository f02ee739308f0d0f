"""Insight service: window resolution and storage wiring.

The orchestrator works on explicit windows and record sets. This layer
serves callers that only know an insight kind and a reference date: it
resolves the window, loads the window's sessions from storage, summarizes
the preceding window for trend comparison and delegates to the
orchestrator.

Example:
    >>> service = build_service(get_config_manager())
    >>> result = asyncio.run(service.insight_for("weekly"))
    >>> print(result.text, result.from_cache)
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from .aggregator import SessionAggregator
from .cache import InsightCache
from .llm import OllamaTextGenerator
from .models import AggregatedSummary, InsightResult, TimeWindow
from .orchestrator import InsightGenerator
from .prompts import PromptBuilder
from .storage import InsightStorage
from .timeparser import TimeParser

if TYPE_CHECKING:
    from .config import ConfigManager, Config

logger = logging.getLogger(__name__)

# Kinds whose prompts carry a comparison with the previous window
TREND_KINDS = ("weekly", "monthly")


class InsightService:
    """Serves insights for (kind, reference date) requests.

    Attributes:
        storage: InsightStorage providing sessions and the cache table.
        orchestrator: InsightGenerator doing the cache/generate work.
        activity_days: Days covered by activity insights.
    """

    def __init__(
        self,
        storage: InsightStorage,
        orchestrator: InsightGenerator,
        activity_days: int = 7,
    ):
        self.storage = storage
        self.orchestrator = orchestrator
        self.activity_days = activity_days

    def window(
        self,
        kind: str,
        reference_time: Optional[datetime] = None,
        activity: Optional[str] = None,
        containing: bool = False,
    ) -> TimeWindow:
        """Resolve the window for a request.

        Args:
            kind: Insight kind.
            reference_time: Reference datetime (defaults to now).
            activity: Activity name for activity insights.
            containing: Use the window that contains reference_time instead
                of the latest completed one before it.
        """
        parser = TimeParser(reference_time, activity_days=self.activity_days)
        if containing:
            return parser.window_containing(kind, parser.now, activity)
        return parser.window_for(kind, activity)

    async def _load_sessions(self, window: TimeWindow) -> list:
        return await asyncio.to_thread(
            self.storage.get_sessions_in_range, window.start, window.end, window.activity
        )

    async def _prior_summary(self, window: TimeWindow) -> Optional[AggregatedSummary]:
        if window.kind not in TREND_KINDS:
            return None
        prior = TimeParser(activity_days=self.activity_days).previous_window(window)
        rows = await self._load_sessions(prior)
        return self.orchestrator.aggregator.aggregate(rows, prior)

    async def insight_for(
        self,
        kind: str,
        reference_time: Optional[datetime] = None,
        activity: Optional[str] = None,
        force: bool = False,
        containing: bool = False,
    ) -> InsightResult:
        """Get the insight for a kind relative to a reference date.

        Args:
            kind: Insight kind.
            reference_time: Reference datetime (defaults to now).
            activity: Activity name for activity insights.
            force: Regenerate even if the cached text is still valid.
            containing: See window().

        Returns:
            InsightResult.

        Raises:
            GenerationUnavailable: If generation failed and nothing is cached.
        """
        window = self.window(kind, reference_time, activity, containing)
        rows = await self._load_sessions(window)
        prior_summary = await self._prior_summary(window)
        logger.info(f"Loaded {len(rows)} sessions for {window.cache_kind} ({window.label})")
        return await self.orchestrator.resolve(
            kind, window, rows, prior_summary=prior_summary, force=force
        )

    async def summary_for(
        self,
        kind: str,
        reference_time: Optional[datetime] = None,
        activity: Optional[str] = None,
        containing: bool = False,
        window: Optional[TimeWindow] = None,
    ) -> AggregatedSummary:
        """Aggregate a window without generating any text.

        Pass an already resolved ``window`` to summarize exactly that window.
        """
        if window is None:
            window = self.window(kind, reference_time, activity, containing)
        rows = await self._load_sessions(window)
        prior_summary = await self._prior_summary(window)
        return self.orchestrator.aggregator.aggregate(rows, window, prior_summary)

    async def purge_cache(self, days: int) -> int:
        """Drop cached insights for windows that ended more than ``days`` ago."""
        cutoff = int(time.time()) - days * 24 * 60 * 60
        return await self.orchestrator.cache.purge(cutoff)


def build_service(config_manager: "ConfigManager") -> InsightService:
    """Wire storage, cache, LLM and orchestrator from configuration."""
    config: "Config" = config_manager.config
    db_path = config.storage.db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    storage = InsightStorage(str(db_path))

    gen_cfg = config.generation
    generator = OllamaTextGenerator(
        model=gen_cfg.model,
        ollama_host=gen_cfg.ollama_host,
        timeout=gen_cfg.request_timeout_seconds,
        max_retries=gen_cfg.max_retries,
        retry_delay=gen_cfg.retry_delay_seconds,
        temperature=gen_cfg.temperature,
        max_tokens=gen_cfg.max_tokens,
        deadline=gen_cfg.timeout_seconds,
        min_request_interval=gen_cfg.min_request_interval_seconds,
    )

    orchestrator = InsightGenerator(
        cache=InsightCache(storage),
        generator=generator,
        aggregator=SessionAggregator(config.insights.sample_descriptions),
        prompts=PromptBuilder(config.insights.description_threshold),
        timeout=gen_cfg.timeout_seconds,
    )
    return InsightService(storage, orchestrator, config.insights.activity_window_days)
