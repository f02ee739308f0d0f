"""Insight orchestration: aggregate, fingerprint, consult cache, generate.

The cache is content-addressed per window. The window identifies the row
and the fingerprint of the window's sessions decides whether the stored
text is still valid, so editing or adding one session inside a window
invalidates exactly that window's entry.

Flow for one request:
    1. Select and aggregate the window's sessions.
    2. Fingerprint the selected sessions.
    3. Read the cached entry for the window (read failures count as a miss).
    4. Same fingerprint: return the cached text without calling the LLM.
    5. Otherwise build a prompt, generate under a timeout, upsert the cache
       (write failures are logged only) and return the new text. If
       generation fails, serve the outdated cached text when there is one.
"""

import asyncio
import inspect
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Optional

from .aggregator import SessionAggregator
from .cache import InsightCache
from .errors import CacheUnavailable, GenerationUnavailable
from .fingerprint import hash_sessions
from .models import AggregatedSummary, CacheEntry, InsightResult, TimeWindow
from .prompts import PromptBuilder

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

# Blocking generators run here rather than on the loop's default executor,
# which asyncio.run joins on shutdown. A call abandoned after a timeout keeps
# its thread until the client gives up on its own deadline.
_GENERATION_POOL = ThreadPoolExecutor(max_workers=8, thread_name_prefix="insight-generation")


class InsightGenerator:
    """Returns cached or freshly generated insight text for a window.

    Attributes:
        cache: InsightCache holding previously generated text.
        generator: Object with ``generate_text(prompt) -> str``; blocking
            implementations run in a worker thread, coroutine ones are awaited.
        aggregator: SessionAggregator used for window selection and summaries.
        prompts: PromptBuilder used on cache misses.
        timeout: Seconds allowed for one generation call.
        clock: Returns the current Unix time; replaceable in tests.
    """

    def __init__(
        self,
        cache: InsightCache,
        generator,
        aggregator: SessionAggregator = None,
        prompts: PromptBuilder = None,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.generator = generator
        self.aggregator = aggregator or SessionAggregator()
        self.prompts = prompts or PromptBuilder()
        self.timeout = timeout
        self.clock = clock

    async def get_insight(
        self,
        kind: str,
        window: TimeWindow,
        records: Iterable,
        prior_summary: Optional[AggregatedSummary] = None,
    ) -> str:
        """Return insight text for a window, reusing the cache when valid.

        Raises:
            GenerationUnavailable: If generation failed and nothing is cached.
        """
        result = await self.resolve(kind, window, records, prior_summary)
        return result.text

    async def regenerate(
        self,
        kind: str,
        window: TimeWindow,
        records: Iterable,
        prior_summary: Optional[AggregatedSummary] = None,
    ) -> str:
        """Generate fresh text for a window, ignoring any valid cached entry.

        Raises:
            GenerationUnavailable: If generation failed and nothing is cached.
        """
        result = await self.resolve(kind, window, records, prior_summary, force=True)
        return result.text

    async def resolve(
        self,
        kind: str,
        window: TimeWindow,
        records: Iterable,
        prior_summary: Optional[AggregatedSummary] = None,
        force: bool = False,
    ) -> InsightResult:
        """Produce an insight and report whether it came from the cache.

        Args:
            kind: Insight kind; must match window.kind.
            window: Window the insight covers.
            records: Session records; those outside the window are ignored.
            prior_summary: Summary of the preceding window, for trends.
            force: Skip the cache-hit check and always call the generator.

        Returns:
            InsightResult with the text and cache metadata.

        Raises:
            ValueError: If kind and window.kind differ.
            GenerationUnavailable: If generation failed and nothing is cached.
        """
        if kind != window.kind:
            raise ValueError(f"Insight kind {kind!r} does not match window kind {window.kind!r}")

        sessions = self.aggregator.window_records(records, window)
        summary = self.aggregator.summarize(sessions, window, prior_summary)
        fingerprint = hash_sessions(sessions)

        cached = None
        if not force:
            cached = await self._read_cache(window)
            if cached is not None and cached.data_hash == fingerprint:
                logger.info(f"Cache hit for {window.cache_kind} ({window.label})")
                return InsightResult(
                    text=cached.insight_text,
                    window=window,
                    fingerprint=fingerprint,
                    from_cache=True,
                    generated_at=cached.generated_at,
                )
            if cached is None:
                logger.info(f"Cache miss for {window.cache_kind} ({window.label})")
            else:
                logger.info(
                    f"Cached {window.cache_kind} insight is stale "
                    f"({cached.data_hash} != {fingerprint}), regenerating"
                )
        else:
            logger.info(f"Forced regeneration for {window.cache_kind} ({window.label})")

        prompt = self.prompts.build(
            window.kind, summary, label=window.label, activity=window.activity
        )

        try:
            text = await self._generate(prompt)
        except GenerationUnavailable as e:
            if force:
                cached = await self._read_cache(window)
            if cached is None:
                logger.error(f"Insight generation failed with nothing cached: {e}")
                raise
            logger.warning(f"Insight generation failed, serving stale cached text: {e}")
            return InsightResult(
                text=cached.insight_text,
                window=window,
                fingerprint=fingerprint,
                from_cache=True,
                stale=True,
                generated_at=cached.generated_at,
            )

        generated_at = int(self.clock())
        entry = CacheEntry(
            insight_type=window.cache_kind,
            time_period_start=window.start,
            time_period_end=window.end,
            data_hash=fingerprint,
            generated_at=generated_at,
            insight_text=text,
        )
        try:
            await self.cache.put(entry)
        except CacheUnavailable as e:
            logger.error(f"Failed to cache {window.cache_kind} insight: {e}")

        return InsightResult(
            text=text,
            window=window,
            fingerprint=fingerprint,
            generated_at=generated_at,
        )

    async def _read_cache(self, window: TimeWindow) -> Optional[CacheEntry]:
        try:
            return await self.cache.get(window.cache_kind, window.start, window.end)
        except CacheUnavailable as e:
            logger.warning(f"{e}; treating as cache miss")
            return None

    async def _generate(self, prompt: str) -> str:
        """Call the generator under the timeout.

        Raises:
            GenerationUnavailable: On failure, timeout or empty output.
        """
        generate_text = self.generator.generate_text
        if inspect.iscoroutinefunction(generate_text):
            call = generate_text(prompt)
        else:
            loop = asyncio.get_running_loop()
            call = loop.run_in_executor(_GENERATION_POOL, generate_text, prompt)

        start_time = time.monotonic()
        try:
            text = await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise GenerationUnavailable(
                f"Text generation timed out after {self.timeout}s"
            ) from e
        except GenerationUnavailable:
            raise
        except Exception as e:
            raise GenerationUnavailable(f"Text generation failed: {e}") from e

        if not isinstance(text, str) or not text.strip():
            raise GenerationUnavailable("Text generation returned no text")

        logger.debug(f"Generated insight in {time.monotonic() - start_time:.2f}s")
        return text.strip()
