"""
Identifier generation for a run.

Identifiers come from one of three sources, chosen in this order:

1. explicit ids given by the user, emitted verbatim and in order;
2. with the legacy run policy ``old``, the control parts of the scanned files;
3. otherwise the test cases of the scanned files.

Discovered definitions are filtered through a ``Basket``. A background
producer hands identifiers to the consumer through a bounded queue, so
scanning runs at most ``handoff_size`` identifiers ahead of job admission.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import suppress
from typing import TYPE_CHECKING, Final, NoReturn

import structlog

from ttcn_orchestrator.constants import DEFAULT_HANDOFF_SIZE, LEGACY_RUN_POLICY
from ttcn_orchestrator.utils.concurrency import CancellationToken, await_or_cancel

if TYPE_CHECKING:
    import os

    from ttcn_orchestrator.selection.basket import Basket
    from ttcn_orchestrator.source.cache import ParsedSourceCache

_END: Final = object()

logger = structlog.get_logger(__name__)


def normalize_policy(policy: str | None) -> str:
    return (policy or "").strip().lower()


class IdentifierStream:
    """Finite, non-restartable async stream of identifiers."""

    def __init__(
        self,
        source: AsyncIterator[str],
        cancel_token: CancellationToken,
        *,
        handoff_size: int = DEFAULT_HANDOFF_SIZE,
    ) -> None:
        if handoff_size <= 0:
            raise ValueError("handoff_size must be > 0")
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=handoff_size)
        self._token = cancel_token
        self._finished = False
        self._exhausted = False
        self._error: Exception | None = None
        self._emitted = 0
        self._producer = asyncio.create_task(self._produce(source))

    @property
    def emitted(self) -> int:
        return self._emitted

    def __aiter__(self) -> IdentifierStream:
        return self

    async def __anext__(self) -> str:
        if self._exhausted:
            raise StopAsyncIteration
        if self._finished and self._queue.empty():
            self._end()
        item = await self._queue.get()
        if item is _END:
            self._end()
        self._emitted += 1
        return item  # type: ignore[return-value]

    async def aclose(self) -> None:
        """Stop the producer and end the stream."""

        self._exhausted = True
        if not self._producer.done():
            self._producer.cancel()
        with suppress(asyncio.CancelledError):
            await self._producer

    def _end(self) -> NoReturn:
        self._exhausted = True
        if self._error is not None:
            raise self._error
        raise StopAsyncIteration

    async def _produce(self, source: AsyncIterator[str]) -> None:
        try:
            async for identifier in source:
                completed, _ = await await_or_cancel(self._queue.put(identifier), self._token)
                if not completed:
                    logger.debug("identifier_generation_cancelled")
                    return
        except Exception as exc:  # noqa: BLE001 - re-raised to the consumer at end of stream.
            self._error = exc
        finally:
            self._finished = True
            # A full queue means nobody is waiting for the end marker.
            with suppress(asyncio.QueueFull):
                self._queue.put_nowait(_END)
            with suppress(Exception):
                await source.aclose()  # type: ignore[attr-defined]


def generate_identifiers(
    ids: Sequence[str],
    files: Sequence[str | os.PathLike[str]],
    policy: str | None,
    basket: Basket,
    cache: ParsedSourceCache,
    cancel_token: CancellationToken,
    *,
    handoff_size: int = DEFAULT_HANDOFF_SIZE,
) -> IdentifierStream:
    """Start producing identifiers; the returned stream must be consumed or closed."""

    if ids:
        source = _explicit(tuple(ids))
    elif normalize_policy(policy) == LEGACY_RUN_POLICY:
        source = _discover(tuple(files), "control", basket, cache, cancel_token)
    else:
        source = _discover(tuple(files), "testcase", basket, cache, cancel_token)
    return IdentifierStream(source, cancel_token, handoff_size=handoff_size)


async def _explicit(ids: tuple[str, ...]) -> AsyncIterator[str]:
    for identifier in ids:
        yield identifier


async def _discover(
    files: tuple[str | os.PathLike[str], ...],
    kind: str,
    basket: Basket,
    cache: ParsedSourceCache,
    cancel_token: CancellationToken,
) -> AsyncIterator[str]:
    emitted = 0
    for path in files:
        if cancel_token.is_cancelled:
            return
        completed, tree = await await_or_cancel(cache.get(path), cancel_token)
        if not completed or tree is None:
            return
        if tree.error is not None:
            logger.warning("source_skipped", path=str(path), error=tree.error)
            continue
        definitions = tree.controls() if kind == "control" else tree.testcases()
        for definition in definitions:
            identifier = definition.qualified_name
            if basket.match(identifier, definition.tags):
                emitted += 1
                yield identifier
    logger.debug("identifiers_discovered", kind=kind, files=len(files), count=emitted)


__all__ = ["IdentifierStream", "generate_identifiers", "normalize_policy"]
