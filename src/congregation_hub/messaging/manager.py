"""
Background broadcast jobs.

``BroadcastManager.start`` validates a request, launches the dispatch as an
asyncio task and returns immediately, so the caller can walk away while the
broadcast keeps going. Progress is pushed to WebSocket subscribers and kept
for polling. Jobs cannot be cancelled once started.
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .. import config
from ..core.logger import get_logger
from ..core.utils import new_id, utc_now_iso
from ..errors import NotFoundError
from .channels import Channel, build_channel
from .dispatcher import BroadcastDispatcher, check_channel, validate_request
from .models import BroadcastProgress, BroadcastRequest, DispatchResult

logger = get_logger(__name__)


@dataclass
class BroadcastJob:
    id: str
    channel: str
    subject: Optional[str]
    created_by: Optional[str]
    created_at: str
    progress: BroadcastProgress = field(default_factory=BroadcastProgress)
    result: Optional[DispatchResult] = None
    error: Optional[str] = None
    task: Optional[asyncio.Task] = None

    @property
    def status(self) -> str:
        if self.error:
            return "error"
        return "complete" if self.progress.is_complete else "running"

    def snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "channel": self.channel,
            "subject": self.subject,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "status": self.status,
            "progress": self.progress.snapshot(),
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
        }


class BroadcastManager:
    def __init__(
        self,
        notifier=None,
        channel_factory: Callable[[str], Channel] = build_channel,
        history_limit: Optional[int] = None,
        batch_size: Optional[int] = None,
        batch_delay_ms: Optional[int] = None,
    ):
        """
        Args:
            notifier: object with an async ``broadcast(message)`` method, such
                as the API's WebSocket connection manager
            channel_factory: builds a delivery channel from its name
            history_limit: number of jobs retained, newest kept
        """
        self.notifier = notifier
        self.channel_factory = channel_factory
        self.history_limit = history_limit or config.BROADCAST_HISTORY_LIMIT
        self.batch_size = batch_size
        self.batch_delay_ms = batch_delay_ms
        self.jobs: "OrderedDict[str, BroadcastJob]" = OrderedDict()

    async def _publish(self, message_type: str, job: BroadcastJob):
        if self.notifier is None:
            return
        await self.notifier.broadcast({"type": message_type, "payload": job.snapshot()})

    async def start(self, request: BroadcastRequest, created_by: Optional[str] = None) -> Dict[str, Any]:
        """Validates and launches a broadcast; returns the new job's snapshot."""
        check_channel(request.channel)
        channel = self.channel_factory(request.channel)
        validate_request(request, channel)

        job = BroadcastJob(
            id=new_id(),
            channel=request.channel,
            subject=request.subject,
            created_by=created_by,
            created_at=utc_now_iso(),
        )

        async def report(_progress: BroadcastProgress):
            await self._publish("broadcast_progress", job)

        dispatcher = BroadcastDispatcher(
            channel, batch_size=self.batch_size, batch_delay_ms=self.batch_delay_ms, on_progress=report
        )
        self.jobs[job.id] = job
        job.task = asyncio.create_task(self._run(job, dispatcher, request))
        self._trim_history()
        logger.info(f"🚀 Started broadcast {job.id} over {request.channel}")
        return job.snapshot()

    async def _run(self, job: BroadcastJob, dispatcher: BroadcastDispatcher, request: BroadcastRequest):
        try:
            job.result = await dispatcher.dispatch(request, job.progress)
        except Exception as e:
            job.error = str(e)
            job.progress.is_complete = True
            logger.error(f"❌ Broadcast {job.id} stopped: {e}")
        finally:
            job.task = None
            await self._publish("broadcast_complete", job)

    def _trim_history(self):
        while len(self.jobs) > self.history_limit:
            oldest_id = next((job_id for job_id, job in self.jobs.items() if job.task is None), None)
            if oldest_id is None:
                break
            self.jobs.pop(oldest_id)

    def get(self, job_id: str) -> Dict[str, Any]:
        job = self.jobs.get(job_id)
        if job is None:
            raise NotFoundError("broadcasts", job_id)
        return job.snapshot()

    def list(self) -> List[Dict[str, Any]]:
        return [job.snapshot() for job in reversed(self.jobs.values())]

    async def wait(self, job_id: str) -> Dict[str, Any]:
        """Waits for a job to finish and returns its final snapshot."""
        job = self.jobs.get(job_id)
        if job is None:
            raise NotFoundError("broadcasts", job_id)
        if job.task is not None:
            await asyncio.shield(job.task)
        return job.snapshot()

    async def shutdown(self):
        """Lets running broadcasts finish before the process exits."""
        running = [job.task for job in self.jobs.values() if job.task is not None]
        if running:
            logger.info(f"⏳ Waiting for {len(running)} running broadcasts")
            await asyncio.gather(*running, return_exceptions=True)
