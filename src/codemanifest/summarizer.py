"""
AI summaries for modules and their exported symbols.

All modules fan out at once; the AdmissionGate bounds how many provider calls
are in flight.  Summaries are cached by content hash (module) and
``hash:symbol_id`` (symbol), so an unchanged file never costs a second call.
A failed summary is counted and skipped; it never aborts the batch.

Everything here runs on one event loop, which owns the gate counters, the
in-flight table and the result counters.
"""

import asyncio
import dataclasses
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from .cache import SummaryCache, symbol_key
from .config import Config, ProviderConfig
from .models import AnalysisManifest, ModuleInfo, Symbol
from .providers import SummaryProvider, create_provider

log = logging.getLogger(__name__)

SUMMARIZED_SYMBOL_KINDS = ("function", "class", "interface")
RETRYABLE_MARKERS = ("429", "rate", "quota", "resource_exhausted")
ERROR_PREVIEW = 120


# ── admission gate ───────────────────────────────────────────────────────────

class AdmissionGate:
    """
    Counting gate: at most ``max_concurrent`` holders; waiters are admitted
    in FIFO order.  ``release`` pauses ``delay_ms`` before handing the slot on.
    """

    def __init__(self, max_concurrent: int, delay_ms: int = 0, sleep=asyncio.sleep):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.delay_ms = delay_ms
        self._sleep = sleep
        self._running = 0
        self._waiters: deque[asyncio.Future] = deque()

    @property
    def running(self) -> int:
        return self._running

    @property
    def waiting(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def acquire(self) -> None:
        if self._running < self.max_concurrent and not self.waiting:
            self._running += 1
            return
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            # slot was handed over just before the cancel landed: pass it on
            if waiter.done() and not waiter.cancelled():
                self._hand_off()
            raise

    async def release(self) -> None:
        if self.delay_ms > 0:
            await self._sleep(self.delay_ms / 1000)
        self._hand_off()

    def _hand_off(self) -> None:
        # the slot moves to the next live waiter; running stays the same
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._running -= 1

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, *exc):
        await self.release()


# ── retry ────────────────────────────────────────────────────────────────────

def is_retryable(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in RETRYABLE_MARKERS)


async def with_retry(
    fn: Callable[[], Awaitable[str]],
    max_retries: int = 3,
    base_delay_ms: int = 2000,
    sleep=asyncio.sleep,
) -> str:
    """Call ``fn``; on a rate-limit style error wait base × 2^attempt and retry."""
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if attempt >= max_retries or not is_retryable(e):
                raise
            wait_ms = base_delay_ms * 2 ** attempt
            log.warning("Rate limited (%s); retry %d/%d in %d ms",
                        str(e)[:80], attempt + 1, max_retries, wait_ms)
            await sleep(wait_ms / 1000)
            attempt += 1


# ── orchestration ────────────────────────────────────────────────────────────

@dataclass
class SummarizeResult:
    modules: list[ModuleInfo]
    cache: SummaryCache
    generated: int = 0
    cached: int = 0
    failed: int = 0
    first_error: str | None = None


@dataclass
class _Batch:
    provider: SummaryProvider
    cache: SummaryCache
    gate: AdmissionGate
    max_retries: int
    base_delay_ms: int
    sleep: Callable
    inflight: dict[str, asyncio.Task] = field(default_factory=dict)
    generated: int = 0
    cached: int = 0
    failed: int = 0
    first_error: str | None = None

    async def summary(self, key: str, call: Callable[[], Awaitable[str]]) -> str | None:
        hit = self.cache.get(key)
        if hit is not None:
            self.cached += 1
            return hit
        task = self.inflight.get(key)
        if task is not None:
            # same key requested twice in one run: share the first call
            self.cached += 1
            return await task
        task = asyncio.ensure_future(self._generate(key, call))
        self.inflight[key] = task
        return await task

    async def _generate(self, key: str, call: Callable[[], Awaitable[str]]) -> str | None:
        async def gated():
            async with self.gate:
                return await call()

        try:
            text = await with_retry(gated, self.max_retries, self.base_delay_ms, self.sleep)
        except Exception as e:
            self.failed += 1
            if self.first_error is None:
                message = str(e) or type(e).__name__
                if len(message) > ERROR_PREVIEW:
                    message = message[:ERROR_PREVIEW] + "..."
                self.first_error = message
            log.debug("Summary %s failed: %s", key, e)
            return None
        if not text:
            return None
        self.cache.put(key, text)
        self.generated += 1
        return text


def _wants_summary(symbol: Symbol) -> bool:
    return symbol.exported and symbol.kind in SUMMARIZED_SYMBOL_KINDS


async def _summarize_module(batch: _Batch, module: ModuleInfo, content: str) -> ModuleInfo:
    provider = batch.provider

    async def symbol_summary(symbol: Symbol) -> Symbol:
        text = await batch.summary(
            symbol_key(module.content_hash, symbol.id),
            lambda: provider.summarize_symbol(symbol, content, module.file_path),
        )
        return dataclasses.replace(symbol, ai_summary=text) if text else symbol

    module_task = batch.summary(module.content_hash,
                                lambda: provider.summarize_module(module, content))
    if provider.is_local:
        symbols = list(module.symbols)
        module_text = await module_task
    else:
        module_text, *updated = await asyncio.gather(
            module_task,
            *(symbol_summary(s) for s in module.symbols if _wants_summary(s)),
        )
        by_id = {s.id: s for s in updated}
        symbols = [by_id.get(s.id, s) for s in module.symbols]

    return dataclasses.replace(
        module,
        symbols=symbols,
        ai_summary=module_text if module_text else module.ai_summary,
    )


async def summarize_modules(
    modules: list[ModuleInfo],
    read_file: Callable[[str], str | None],
    provider: SummaryProvider | None,
    *,
    cache: SummaryCache | None = None,
    settings: ProviderConfig | None = None,
    sleep=asyncio.sleep,
) -> SummarizeResult:
    """
    Summarize ``modules`` and their exported functions, classes and
    interfaces.  Returns new module objects; the inputs are not mutated.

    ``read_file`` maps a module path to its source, or None to skip it.
    Without a provider the modules come back unchanged.
    """
    cache = cache if cache is not None else SummaryCache()
    if provider is None:
        return SummarizeResult(modules=list(modules), cache=cache)

    settings = settings or ProviderConfig()
    batch = _Batch(
        provider=provider,
        cache=cache,
        gate=AdmissionGate(settings.concurrency, settings.delay_ms, sleep),
        max_retries=settings.max_retries,
        base_delay_ms=settings.base_delay_ms,
        sleep=sleep,
    )

    async def one(module: ModuleInfo) -> ModuleInfo:
        content = read_file(module.file_path)
        if content is None:
            return module
        return await _summarize_module(batch, module, content)

    updated = await asyncio.gather(*(one(m) for m in modules))
    log.info("AI summaries via %s: %d generated, %d cached, %d failed",
             provider.name, batch.generated, batch.cached, batch.failed)
    if batch.first_error:
        log.warning("First summary error: %s", batch.first_error)
    return SummarizeResult(
        modules=list(updated),
        cache=cache,
        generated=batch.generated,
        cached=batch.cached,
        failed=batch.failed,
        first_error=batch.first_error,
    )


def summarize_manifest(manifest: AnalysisManifest, config: Config,
                       provider: SummaryProvider | None = None) -> SummarizeResult:
    """
    Summarize every module of ``manifest`` in place, reusing and extending
    its persisted summary cache.
    """
    settings = config.analysis.ai_provider or ProviderConfig()
    if provider is None:
        provider = create_provider(settings)
    cache = SummaryCache(manifest.summary_cache)
    root = Path(config.root)

    def read_file(rel_path: str) -> str | None:
        try:
            return (root / rel_path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            log.warning("Cannot read %s for summary: %s", rel_path, e)
            return None

    result = asyncio.run(summarize_modules(
        manifest.modules, read_file, provider, cache=cache, settings=settings,
    ))
    manifest.modules = result.modules
    if provider is not None:
        manifest.summary_cache = cache.entries()
    return result
