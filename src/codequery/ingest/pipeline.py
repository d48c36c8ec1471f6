"""Ingestion pipeline engine: a typed, fluent builder over async streams.

A pipeline is a chain of async generators. Each unit flowing through it is an
``Item``, a ``Chunk`` or a ``Failure`` standing in for a unit that failed in an
earlier stage. Stages never raise for a single unit; they emit a ``Failure``
instead, so one bad file or batch never cancels its siblings. Only a failure
to enumerate the source aborts the run.

Typical wiring (see codequery.ingest.indexer)::

    markdown, code = (
        Pipeline.from_loader(loader, context)
        .filter_cached(cache)
        .split_by(lambda item: item.extension == "md")
    )
    markdown = markdown.then_chunk(md_chunker).then(MetadataQAText(client))
    code = code.then_chunk(code_chunker).then(MetadataQACode(client))
    stats = await (
        markdown.merge(code)
        .then_in_batch(Embed(client), batch_size=50)
        .log_errors()
        .filter_errors()
        .then_store_with(storage)
        .run()
    )

Stage inputs are checked against the unit type the pipeline produces when the
stage is appended (``PipelineTypeError``). Every handle can be extended once;
the handles of one pipeline share a single run.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

from codequery.errors import PipelineError, PipelineTypeError
from codequery.ingest.models import Chunk, Failure, Item, RunStats
from codequery.ingest.stages import (
    BatchTransformer,
    Chunker,
    Loader,
    NodeCache,
    Storage,
    Transformer,
)

if TYPE_CHECKING:
    from codequery.context import RunContext

Stream = AsyncIterator[Any]
StreamFactory = Callable[[], Stream]

DEFAULT_CONCURRENCY = 50


class _End:
    """End-of-stream marker on internal queues."""


_END = _End()


@dataclass
class _Abort:
    """Carries an upstream exception across a queue."""

    error: BaseException


@dataclass
class _RunState:
    """State shared by every handle derived from one ``from_loader`` call."""

    concurrency: int
    stats: RunStats = field(default_factory=RunStats)
    cache: NodeCache | None = None
    # fingerprint -> chunks of the item not yet stored
    pending: dict[str, int] = field(default_factory=dict)
    storages: list[Storage] = field(default_factory=list)
    splitters: list[_Splitter] = field(default_factory=list)
    tasks: list[asyncio.Task] = field(default_factory=list)
    started: bool = False

    def chunked(self, item: Item, count: int) -> None:
        self.stats.chunks += count
        if count == 0:
            self.stats.items_empty += 1
            self._record(item.fingerprint)
        else:
            self.pending[item.fingerprint] = count

    def stored(self, chunk: Chunk) -> None:
        self.stats.stored += 1
        remaining = self.pending.get(chunk.fingerprint)
        if remaining is None:
            return
        if remaining <= 1:
            del self.pending[chunk.fingerprint]
            self._record(chunk.fingerprint)
        else:
            self.pending[chunk.fingerprint] = remaining - 1

    def fail(self, failure: Failure) -> None:
        self.stats.record_failure(failure)
        if failure.fingerprint is not None:
            # The item stays out of the cache so the next run retries it.
            self.pending.pop(failure.fingerprint, None)

    def _record(self, fp: str) -> None:
        if self.cache is not None:
            self.cache.insert(fp)

    def cancel_tasks(self) -> None:
        for task in self.tasks:
            task.cancel()
        self.tasks.clear()


# ---------------------------------------------------------------------------
# Stream combinators
# ---------------------------------------------------------------------------


async def _ordered_map(
    stream: Stream, fn: Callable[[Any], Awaitable[Any]], limit: int
) -> AsyncIterator[Any]:
    """Apply *fn* to every unit with at most *limit* calls in flight.

    Results are yielded in input order.
    """
    window: deque[asyncio.Future] = deque()
    try:
        async for unit in stream:
            window.append(asyncio.ensure_future(fn(unit)))
            if len(window) >= limit:
                yield await window.popleft()
        while window:
            yield await window.popleft()
    finally:
        for task in window:
            task.cancel()


async def _merge(streams: list[Stream], limit: int) -> AsyncIterator[Any]:
    """Interleave *streams* in arrival order."""
    queue: asyncio.Queue = asyncio.Queue(maxsize=limit)

    async def drain(stream: Stream) -> None:
        try:
            async for unit in stream:
                await queue.put(unit)
        except Exception as exc:
            await queue.put(_Abort(exc))
        else:
            await queue.put(_END)

    tasks = [asyncio.create_task(drain(s)) for s in streams]
    try:
        remaining = len(tasks)
        while remaining:
            unit = await queue.get()
            if unit is _END:
                remaining -= 1
            elif isinstance(unit, _Abort):
                raise unit.error
            else:
                yield unit
    finally:
        for task in tasks:
            task.cancel()


class _Splitter:
    """Routes one upstream stream into two bounded queues.

    The pump starts when the first branch is iterated. A full queue blocks the
    pump, so both branches must be consumed.
    """

    def __init__(
        self,
        upstream: StreamFactory,
        predicate: Callable[[Any], bool],
        state: _RunState,
    ) -> None:
        self._upstream = upstream
        self._predicate = predicate
        self._state = state
        self._queues = (
            asyncio.Queue(maxsize=state.concurrency),
            asyncio.Queue(maxsize=state.concurrency),
        )
        self._pump_task: asyncio.Task | None = None
        self.opened = [False, False]

    def branch(self, index: int) -> Stream:
        self.opened[index] = True
        return self._consume(index)

    async def _consume(self, index: int) -> AsyncIterator[Any]:
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump())
            self._state.tasks.append(self._pump_task)
        queue = self._queues[index]
        while True:
            unit = await queue.get()
            if unit is _END:
                return
            if isinstance(unit, _Abort):
                raise unit.error
            yield unit

    async def _pump(self) -> None:
        try:
            async for unit in self._upstream():
                unit, index = self._route(unit)
                await self._queues[index].put(unit)
        except Exception as exc:
            for queue in self._queues:
                await queue.put(_Abort(exc))
        else:
            for queue in self._queues:
                await queue.put(_END)

    def _route(self, unit: Any) -> tuple[Any, int]:
        # Failures go to the first (default) branch so they are never lost.
        if isinstance(unit, Failure):
            return unit, 0
        try:
            matched = self._predicate(unit)
        except Exception as exc:
            return Failure.of(unit, exc, "split"), 0
        return unit, 0 if matched else 1


# ---------------------------------------------------------------------------
# Stage bodies
# ---------------------------------------------------------------------------


async def _from_loader(loader: Loader, state: _RunState) -> AsyncIterator[Any]:
    for unit in loader.iter_items():
        if isinstance(unit, Item):
            state.stats.items_loaded += 1
        yield unit
        # Loading is synchronous; give downstream tasks a turn per file.
        await asyncio.sleep(0)


async def _filter_cached(stream: Stream, cache: NodeCache, state: _RunState) -> AsyncIterator[Any]:
    async for unit in stream:
        if isinstance(unit, Item) and cache.contains(unit.fingerprint):
            state.stats.items_cached += 1
            logger.debug("Skipping cached item {}", unit.path)
            continue
        yield unit


async def _chunk(stream: Stream, chunker: Chunker, state: _RunState) -> AsyncIterator[Any]:
    async for unit in stream:
        if isinstance(unit, Failure):
            yield unit
            continue
        try:
            chunks = chunker.chunk(unit)
        except Exception as exc:
            yield Failure.of(unit, exc, "chunk")
            continue
        state.chunked(unit, len(chunks))
        for chunk in chunks:
            yield chunk


async def _batch(stream: Stream, size: int) -> AsyncIterator[Any]:
    batch: list[Chunk] = []
    async for unit in stream:
        if isinstance(unit, Failure):
            yield unit
            continue
        batch.append(unit)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


async def _flatten(stream: Stream) -> AsyncIterator[Any]:
    async for units in stream:
        for unit in units:
            yield unit


async def _log_errors(stream: Stream) -> AsyncIterator[Any]:
    async for unit in stream:
        if isinstance(unit, Failure):
            logger.error("{} failed for {}: {}", unit.stage, unit.path or "<unknown>", unit.error)
        yield unit


async def _filter_errors(stream: Stream, state: _RunState) -> AsyncIterator[Any]:
    async for unit in stream:
        if isinstance(unit, Failure):
            state.fail(unit)
            continue
        yield unit


def _transform_fn(transformer: Transformer) -> Callable[[Any], Awaitable[Any]]:
    async def apply(unit: Any) -> Any:
        if isinstance(unit, Failure):
            return unit
        try:
            return await transformer.transform(unit)
        except Exception as exc:
            return Failure.of(unit, exc, transformer.name)

    return apply


def _batch_fn(transformer: BatchTransformer) -> Callable[[Any], Awaitable[list[Any]]]:
    async def apply(unit: Any) -> list[Any]:
        if isinstance(unit, Failure):
            return [unit]
        try:
            result = await transformer.transform_batch(unit)
            if len(result) != len(unit):
                raise PipelineError(
                    f"{transformer.name} returned {len(result)} chunks for a batch of {len(unit)}"
                )
            return list(result)
        except Exception as exc:
            return [Failure.of(chunk, exc, transformer.name) for chunk in unit]

    return apply


def _store_fn(storage: Storage, state: _RunState) -> Callable[[Any], Awaitable[Any]]:
    async def apply(unit: Any) -> Any:
        if isinstance(unit, Failure):
            return unit
        try:
            stored = await storage.store(unit)
        except Exception as exc:
            return Failure.of(unit, exc, "store")
        state.stored(unit)
        return stored

    return apply


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class Pipeline:
    """A handle on a stream of units of type ``unit_type`` (plus Failures).

    Builder methods consume the handle and return a new one; extending,
    splitting or running a handle twice raises ``PipelineError``.
    """

    def __init__(self, source: StreamFactory, unit_type: type, state: _RunState) -> None:
        self._source = source
        self.unit_type = unit_type
        self._state = state
        self._used = False

    @classmethod
    def from_loader(cls, loader: Loader, context: RunContext | None = None) -> Pipeline:
        """Start a pipeline reading from *loader*.

        The concurrency limit is taken from *context* when given.
        """
        concurrency = getattr(context, "concurrency", None) or DEFAULT_CONCURRENCY
        state = _RunState(concurrency=concurrency)
        return cls(lambda: _from_loader(loader, state), loader.output_type, state)

    @property
    def stats(self) -> RunStats:
        return self._state.stats

    # -- configuration -------------------------------------------------

    def with_concurrency(self, concurrency: int) -> Pipeline:
        """Set the in-flight limit of the network-bound stages of this run."""
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._state.concurrency = concurrency
        return self

    # -- stages --------------------------------------------------------

    def filter_cached(self, cache: NodeCache) -> Pipeline:
        """Drop items already in *cache*; record items whose chunks were all stored."""
        self._check(Item, "filter_cached")
        self._state.cache = cache
        return self._derive(lambda s: _filter_cached(s, cache, self._state), Item)

    def split_by(self, predicate: Callable[[Any], bool]) -> tuple[Pipeline, Pipeline]:
        """Partition the stream into (matching, non-matching) branches.

        Failures, and units for which *predicate* raises, go to the first
        branch. Both branches must be consumed, normally through ``merge``.
        """
        upstream = self._take()
        splitter = _Splitter(upstream, predicate, self._state)
        self._state.splitters.append(splitter)
        return (
            Pipeline(lambda: splitter.branch(0), self.unit_type, self._state),
            Pipeline(lambda: splitter.branch(1), self.unit_type, self._state),
        )

    def then_chunk(self, chunker: Chunker) -> Pipeline:
        self._check(chunker.input_type, type(chunker).__name__)
        state = self._state
        return self._derive(lambda s: _chunk(s, chunker, state), chunker.output_type)

    def then(self, transformer: Transformer) -> Pipeline:
        self._check(transformer.input_type, type(transformer).__name__)
        state = self._state
        fn = _transform_fn(transformer)
        return self._derive(
            lambda s: _ordered_map(s, fn, state.concurrency), transformer.output_type
        )

    def merge(self, other: Pipeline) -> Pipeline:
        """Recombine two branches of the same run, in arrival order."""
        if other._state is not self._state:
            raise PipelineError("Cannot merge pipelines of different runs")
        unit_type = _common_type(self.unit_type, other.unit_type)
        left, right = self._take(), other._take()
        state = self._state
        return Pipeline(
            lambda: _merge([left(), right()], state.concurrency), unit_type, state
        )

    def then_in_batch(self, transformer: BatchTransformer, batch_size: int) -> Pipeline:
        """Run *transformer* once per batch of up to *batch_size* chunks.

        The final batch may be short. A failing call fails every chunk of its
        batch.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._check(transformer.input_type, type(transformer).__name__)
        state = self._state
        fn = _batch_fn(transformer)
        return self._derive(
            lambda s: _flatten(_ordered_map(_batch(s, batch_size), fn, state.concurrency)),
            transformer.output_type,
        )

    def log_errors(self) -> Pipeline:
        return self._derive(_log_errors, self.unit_type)

    def filter_errors(self) -> Pipeline:
        state = self._state
        return self._derive(lambda s: _filter_errors(s, state), self.unit_type)

    def then_store_with(self, storage: Storage) -> Pipeline:
        self._check(storage.input_type, type(storage).__name__)
        state = self._state
        state.storages.append(storage)
        fn = _store_fn(storage, state)
        return self._derive(
            lambda s: _ordered_map(s, fn, state.concurrency), storage.output_type
        )

    # -- execution -----------------------------------------------------

    async def run(self) -> RunStats:
        """Drive the pipeline to completion and return its counters.

        Raises:
            PipelineError: If the pipeline already ran, or a branch of a
                split was never consumed.
            LoaderError: If the source cannot be enumerated.
        """
        state = self._state
        if state.started:
            raise PipelineError("Pipeline already ran; build a new one for every run")
        source = self._take()
        state.started = True
        stream = source()
        for splitter in state.splitters:
            if not all(splitter.opened):
                raise PipelineError("Both branches of split_by() must be merged before run()")
        for storage in state.storages:
            storage.setup()

        try:
            async for unit in stream:
                if isinstance(unit, Failure):
                    state.fail(unit)
        finally:
            await stream.aclose()
            state.cancel_tasks()

        stats = state.stats
        logger.info(
            "Ingestion finished: {} loaded, {} cached, {} empty, {} chunks, {} stored, "
            "{} failed in {} items",
            stats.items_loaded,
            stats.items_cached,
            stats.items_empty,
            stats.chunks,
            stats.stored,
            stats.failed,
            stats.items_failed,
        )
        return stats

    # -- internals -----------------------------------------------------

    def _check(self, expected: type, stage: str) -> None:
        if not issubclass(self.unit_type, expected):
            raise PipelineTypeError(
                f"{stage} expects {expected.__name__} units, "
                f"but the pipeline produces {self.unit_type.__name__}"
            )

    def _take(self) -> StreamFactory:
        if self._used:
            raise PipelineError("Pipeline handle was already extended, merged or run")
        self._used = True
        return self._source

    def _derive(self, wrap: Callable[[Stream], Stream], unit_type: type) -> Pipeline:
        upstream = self._take()
        return Pipeline(lambda: wrap(upstream()), unit_type, self._state)


def _common_type(left: type, right: type) -> type:
    if issubclass(left, right):
        return right
    if issubclass(right, left):
        return left
    raise PipelineTypeError(
        f"Cannot merge a {left.__name__} branch with a {right.__name__} branch"
    )

