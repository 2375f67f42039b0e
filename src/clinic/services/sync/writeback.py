"""Background write-back of assigned roles to the identity provider."""

import asyncio
import logging
from dataclasses import dataclass

from starlette.concurrency import run_in_threadpool
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from src.clinic.services.analytics import PostHogService
from src.clinic.services.directory.models import Role
from src.clinic.services.sync.provider import IdentityProviderClient

logger = logging.getLogger(__name__)


def _retrieve_outcome(call: asyncio.Future) -> None:
    # A provider call abandoned on timeout may still fail later; consume its result
    if not call.cancelled() and call.exception() is not None:
        logger.debug(f"Provider call finished with error: {call.exception()}")


@dataclass(frozen=True)
class RoleWriteback:
    """A pending provider metadata update."""

    auth_id: str
    role: Role


class RoleWritebackQueue:
    """
    Fire-and-forget queue of provider role updates.

    The local record is the source of truth; the provider copy only lets
    later tokens carry the role. Jobs are drained by a single background task
    with bounded retry, so a slow or failing provider never delays or fails
    the request that enqueued the job.

    Attributes:
        provider: Identity provider admin client
        max_attempts: Attempts per job before giving up
        timeout: Bound on a single provider call in seconds

    Example:
        >>> queue = RoleWritebackQueue(provider)
        >>> await queue.start()
        >>> queue.enqueue("user_2abc", Role.PATIENT)
        >>> await queue.stop()
    """

    def __init__(
        self,
        provider: IdentityProviderClient,
        max_attempts: int = 3,
        timeout: float = 5.0,
        maxsize: int = 1000,
        retry_wait: wait_base | None = None,
        analytics: PostHogService | None = None,
    ):
        self.provider = provider
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self.analytics = analytics or PostHogService()
        self._queue: asyncio.Queue[RoleWriteback] = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task | None = None

    def enqueue(self, auth_id: str, role: Role) -> bool:
        """
        Schedule a role write-back without waiting for it.

        Returns:
            False if the queue is full and the job was dropped
        """
        try:
            self._queue.put_nowait(RoleWriteback(auth_id=auth_id, role=role))
        except asyncio.QueueFull:
            logger.error(
                f"Role write-back queue full, dropping update for {auth_id}",
                extra={"error_type": "writeback_queue_full", "auth_id": auth_id},
            )
            return False
        return True

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())
            logger.info("Role write-back worker started")

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Give queued jobs `drain_timeout` seconds to finish, then stop the worker."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Role write-back worker stopped with {self.pending} jobs pending",
                extra={"pending": self.pending},
            )
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Role write-back worker stopped")

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.process(job)
            finally:
                self._queue.task_done()

    async def process(self, job: RoleWriteback) -> bool:
        """
        Push one role update to the provider, retrying transient failures.

        Returns:
            True if the provider accepted the update
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    call = asyncio.ensure_future(
                        run_in_threadpool(self.provider.update_role_metadata, job.auth_id, job.role)
                    )
                    call.add_done_callback(_retrieve_outcome)
                    # The worker thread cannot be interrupted; stop waiting for it instead
                    await asyncio.wait_for(asyncio.shield(call), timeout=self.timeout)
        except Exception as e:
            logger.error(
                f"Role write-back failed for {job.auth_id} after {self.max_attempts} attempts: {e}",
                extra={
                    "error_type": "writeback_failed",
                    "auth_id": job.auth_id,
                    "role": job.role.value,
                },
            )
            self.analytics.capture(
                distinct_id=job.auth_id,
                event="role_writeback_failed",
                properties={"role": job.role.value, "error": str(e)},
            )
            return False

        logger.info(
            f"Role write-back succeeded for {job.auth_id}",
            extra={"auth_id": job.auth_id, "role": job.role.value},
        )
        return True
