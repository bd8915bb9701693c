"""Background queue worker.

Polls the job queue, runs up to ``max_concurrency`` handlers at once
under an ``asyncio.Semaphore``, and refreshes the heartbeat of every
in-flight lease so other workers do not reclaim them. Runs inside the
API process (started from the app lifespan) or standalone via
``codementor worker``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import uuid
from collections.abc import Awaitable, Callable

from codementor.constants import ID_HEX_LENGTH
from codementor.jobs.queue import JobQueue
from codementor.models.job import AnalysisJob

logger = logging.getLogger(__name__)

type JobHandler = Callable[[AnalysisJob], Awaitable[None]]


def default_worker_id() -> str:
    suffix = uuid.uuid4().hex[:ID_HEX_LENGTH]
    return f"{socket.gethostname()}:{os.getpid()}:{suffix}"


class QueueWorker:
    def __init__(
        self,
        queue: JobQueue,
        handler: JobHandler,
        *,
        worker_id: str | None = None,
        poll_interval: float = 1.0,
        max_concurrency: int = 4,
        heartbeat_interval: float = 30.0,
    ) -> None:
        self.queue = queue
        self.handler = handler
        self.worker_id = worker_id or default_worker_id()
        self.poll_interval = poll_interval
        self.max_concurrency = max_concurrency
        self.heartbeat_interval = heartbeat_interval

        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._inflight: dict[str, asyncio.Task[None]] = {}
        self._loops: list[asyncio.Task[None]] = []
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return bool(self._loops)

    @property
    def inflight(self) -> list[str]:
        return list(self._inflight)

    async def start(self) -> None:
        if self.running:
            logger.warning(
                "event=worker_already_running worker_id=%s", self.worker_id
            )
            return
        self._stopping.clear()
        self._loops = [
            asyncio.create_task(self._poll_loop()),
            asyncio.create_task(self._heartbeat_loop()),
        ]
        logger.info(
            "event=worker_started worker_id=%s concurrency=%d",
            self.worker_id,
            self.max_concurrency,
        )

    async def stop(self, timeout: float = 10.0) -> None:
        """Stop polling and give in-flight jobs *timeout* seconds.

        Jobs still running after that are cancelled; their leases go
        stale and another worker picks them up.
        """
        self._stopping.set()
        for task in self._loops:
            task.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []

        pending = list(self._inflight.values())
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)
        logger.info("event=worker_stopped worker_id=%s", self.worker_id)

    async def run_forever(self) -> None:
        """Standalone mode: run until ``stop`` is called or cancelled."""
        await self.start()
        try:
            await self._stopping.wait()
        finally:
            await self.stop()

    def request_stop(self) -> None:
        """Signal-safe: make ``run_forever`` return after draining."""
        self._stopping.set()

    async def run_once(self) -> int:
        """Claim whatever is due now and process it to completion."""
        jobs = await self.queue.claim(self.worker_id, self._capacity())
        tasks = [self._spawn(job) for job in jobs]
        await asyncio.gather(*tasks, return_exceptions=True)
        return len(jobs)

    def _capacity(self) -> int:
        return self.max_concurrency - len(self._inflight)

    def _spawn(self, job: AnalysisJob) -> asyncio.Task[None]:
        task = asyncio.create_task(self._process(job))
        self._inflight[job.id] = task
        task.add_done_callback(lambda _t: self._inflight.pop(job.id, None))
        return task

    async def _poll_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                for job in await self.queue.claim(
                    self.worker_id, self._capacity()
                ):
                    self._spawn(job)
            except Exception:
                logger.exception(
                    "event=poll_failed worker_id=%s", self.worker_id
                )
            await asyncio.sleep(self.poll_interval)

    async def _heartbeat_loop(self) -> None:
        while not self._stopping.is_set():
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.queue.heartbeat(self.worker_id, self.inflight)
            except Exception:
                logger.exception(
                    "event=heartbeat_failed worker_id=%s", self.worker_id
                )

    async def _process(self, job: AnalysisJob) -> None:
        async with self._semaphore:
            logger.info(
                "event=job_started job_id=%s attempt=%d worker_id=%s",
                job.id,
                job.attempts,
                self.worker_id,
            )
            try:
                await self.handler(job)
            except Exception as exc:
                outcome = await self._settle(job, exc)
            else:
                outcome = await self._settle(job, None)
            logger.info(
                "event=job_finished job_id=%s outcome=%s", job.id, outcome
            )

    async def _settle(
        self, job: AnalysisJob, error: Exception | None
    ) -> str:
        """Acknowledge the delivery; an unacked lease goes stale."""
        try:
            if error is None:
                await self.queue.complete(job, self.worker_id)
                return "done"
            return await self.queue.fail(job, self.worker_id, error)
        except Exception:
            logger.exception(
                "event=job_ack_failed job_id=%s worker_id=%s",
                job.id,
                self.worker_id,
            )
            return "unacknowledged"
