"""GenerationOrchestrator — fans out insight generation after an entry is saved.

    orchestrator = GenerationOrchestrator(generators, sink)
    orchestrator.trigger(entries, EntitlementTier.PREMIUM)   # returns at once

Premium tier only.  Each call launches one independent task per generator
and publishes a ``CompletionEvent`` for every task when it finishes,
whether the generator succeeded or raised.  The event means "check the
store again"; it carries no result.

The tasks of one call are kept as an ``InvocationGroup`` under the id
``trigger`` returns.  Nothing is deduplicated here: overlapping calls
rely on each generator's own freshness check, and concurrency across
calls is unbounded.
"""

from __future__ import annotations
import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from .errors import GeneratorFailed, SinkUnavailable
from .events import INSIGHTS_UPDATED, EventSink
from .generators import InsightGenerator
from .store import utcnow
from .types import CompletionEvent, EntitlementTier, Entry, GenerationJob

logger = logging.getLogger(__name__)


@dataclass
class InvocationGroup:
    """Tasks launched by one ``trigger`` call."""
    invocation_id: str
    jobs: list[GenerationJob]
    tasks: list[asyncio.Task] = field(default_factory=list)
    done: asyncio.Event = field(default_factory=asyncio.Event)


class GenerationOrchestrator:
    """Gates on entitlement and runs the generators concurrently.

    Args:
        generators: One generator per insight kind.
        sink: Where completion events are published.
        loop: Loop the tasks run on.  Defaults to the loop running in the
            calling thread at ``trigger`` time.
        event_name: Event published for each finished job.
    """

    def __init__(
        self,
        generators: Sequence[InsightGenerator],
        sink: EventSink,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        event_name: str = INSIGHTS_UPDATED,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.generators = list(generators)
        self.sink = sink
        self.event_name = event_name
        self._loop = loop
        self._clock = clock
        self._groups: dict[str, InvocationGroup] = {}
        self._lock = threading.Lock()

    def trigger(self, entries: Sequence[Entry], tier: EntitlementTier | str) -> str | None:
        """Launch background generation and return without waiting.

        Returns the invocation id, or ``None`` when the tier is not premium.

        Raises:
            ValueError: ``tier`` is not a known tier.
            RuntimeError: no loop was given and none is running in this thread.
        """
        tier = EntitlementTier(tier)
        if tier is not EntitlementTier.PREMIUM:
            logger.info("Skipping insight generation (%s tier)", tier.value)
            return None

        loop = self._loop or asyncio.get_running_loop()
        invocation_id = uuid.uuid4().hex[:12]
        snapshot = tuple(entries)
        jobs = [GenerationJob(g.kind, invocation_id) for g in self.generators]

        if _running_loop() is loop:
            group = InvocationGroup(invocation_id, jobs)
            with self._lock:
                self._groups[invocation_id] = group
            self._spawn(group, snapshot)
        else:
            loop.call_soon_threadsafe(self._register_and_spawn, invocation_id, jobs, snapshot)

        logger.info("Launched %d insight jobs (invocation %s)", len(jobs), invocation_id)
        return invocation_id

    def in_flight(self) -> list[str]:
        """Ids of invocations with at least one unfinished job."""
        with self._lock:
            return list(self._groups)

    async def join(self) -> None:
        """Wait until every invocation launched so far has finished.

        Must be awaited on the orchestrator's loop.  Does not cancel anything.
        """
        while True:
            with self._lock:
                pending = [g.done for g in self._groups.values()]
            if not pending:
                return
            await asyncio.gather(*(event.wait() for event in pending))

    # ------------------------------------------------------------------
    # Loop-side
    # ------------------------------------------------------------------

    def _register_and_spawn(self, invocation_id: str, jobs: list[GenerationJob],
                            entries: tuple[Entry, ...]) -> None:
        group = InvocationGroup(invocation_id, jobs)
        with self._lock:
            self._groups[invocation_id] = group
        self._spawn(group, entries)

    def _spawn(self, group: InvocationGroup, entries: tuple[Entry, ...]) -> None:
        for job, generator in zip(group.jobs, self.generators):
            task = asyncio.get_running_loop().create_task(
                self._run_job(job, generator, entries),
                name=f"{job.kind.value}-{group.invocation_id}",
            )
            task.add_done_callback(lambda _t, g=group: self._on_task_done(g))
            group.tasks.append(task)
        if not group.tasks:
            self._on_task_done(group)

    def _on_task_done(self, group: InvocationGroup) -> None:
        if all(t.done() for t in group.tasks):
            with self._lock:
                self._groups.pop(group.invocation_id, None)
            group.done.set()

    async def _run_job(self, job: GenerationJob, generator: InsightGenerator,
                       entries: tuple[Entry, ...]) -> None:
        job.start()
        try:
            await generator.generate_if_needed(entries)
        except Exception as exc:
            job.fail()
            failure = GeneratorFailed(job.kind, exc)
            logger.error("%s (invocation %s)", failure, job.invocation_id, exc_info=exc)
        else:
            job.complete()
        try:
            self._publish(job)
        except Exception:
            logger.exception("Completion event for %s (invocation %s) not published",
                             job.kind.value, job.invocation_id)

    def _publish(self, job: GenerationJob) -> None:
        event = CompletionEvent(job.kind, self._clock(), job.invocation_id)
        try:
            self.sink.publish(self.event_name, event)
        except SinkUnavailable as exc:
            logger.warning("Completion event for %s dropped: %s", job.kind.value, exc)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
