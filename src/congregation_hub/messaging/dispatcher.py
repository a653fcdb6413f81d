"""
Broadcast dispatcher.

Delivers one message per recipient, strictly in order, in fixed-size
batches with a pause between consecutive batches (none after the last).
A failed recipient is counted and logged; the broadcast always runs to the
end of the list. There are no retries and no deduplication.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from .. import config
from ..core.logger import get_logger
from ..errors import BroadcastValidationError
from .channels import Channel
from .models import CHANNEL_DIRECT_MESSAGE, CHANNEL_EMAIL, CHANNELS, BroadcastProgress, BroadcastRequest, DispatchResult, Recipient

logger = get_logger(__name__)

ProgressCallback = Callable[[BroadcastProgress], Awaitable[None]]


def partition_recipients(recipients: Sequence[Recipient], channel: Channel) -> Tuple[List[Recipient], List[Recipient]]:
    """Splits recipients into those the channel can reach and those missing its identifier."""
    eligible, skipped = [], []
    for recipient in recipients:
        (eligible if channel.identifier(recipient) else skipped).append(recipient)
    return eligible, skipped


def make_batches(items: Sequence, batch_size: int) -> List[List]:
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]


def check_channel(name: str) -> None:
    if name not in CHANNELS:
        raise BroadcastValidationError(f"Unknown channel '{name}'")


def validate_request(request: BroadcastRequest, channel: Channel) -> List[Recipient]:
    """
    Checks a broadcast before anything is sent.

    Returns the eligible recipients.

    Raises:
        BroadcastValidationError: empty body, missing subject or Google token
            for email, missing sender for direct messages, or nobody reachable
    """
    check_channel(request.channel)
    if not request.body or not request.body.strip():
        raise BroadcastValidationError("Please enter a message")
    if request.channel == CHANNEL_EMAIL:
        if not request.subject or not request.subject.strip():
            raise BroadcastValidationError("Please enter a subject for the email")
        if not request.google_access_token:
            raise BroadcastValidationError("Please sign in with Google to send emails")
    if request.channel == CHANNEL_DIRECT_MESSAGE and not (request.sender and request.sender.id):
        raise BroadcastValidationError("Direct messages need a signed-in sender")

    eligible, _ = partition_recipients(request.recipients, channel)
    if not eligible:
        raise BroadcastValidationError("No recipients selected")
    return eligible


class BroadcastDispatcher:
    def __init__(
        self,
        channel: Channel,
        batch_size: Optional[int] = None,
        batch_delay_ms: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.channel = channel
        self.batch_size = config.BROADCAST_BATCH_SIZE if batch_size is None else batch_size
        self.batch_delay_ms = config.BROADCAST_BATCH_DELAY_MS if batch_delay_ms is None else batch_delay_ms
        self.on_progress = on_progress

        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

    async def _report(self, progress: BroadcastProgress):
        if self.on_progress is None:
            return
        try:
            await self.on_progress(progress)
        except Exception as e:
            logger.warning(f"⚠️ Progress callback failed: {e}")

    async def dispatch(self, request: BroadcastRequest, progress: Optional[BroadcastProgress] = None) -> DispatchResult:
        eligible, skipped = partition_recipients(request.recipients, self.channel)
        progress = progress or BroadcastProgress()
        progress.total = len(eligible)
        progress.skipped = len(skipped)

        if skipped:
            logger.info(f"⏭️ Skipping {len(skipped)} recipients without a {self.channel.name} identifier")

        batches = make_batches(eligible, self.batch_size)
        logger.info(
            f"📦 Dispatching {self.channel.name} broadcast to {len(eligible)} recipients "
            f"in {len(batches)} batches of up to {self.batch_size}"
        )
        await self._report(progress)

        for batch_num, batch in enumerate(batches, 1):
            for recipient in batch:
                progress.current = recipient.label
                await self._report(progress)

                try:
                    await self.channel.deliver(recipient, request)
                    progress.sent += 1
                except Exception as e:
                    progress.failed += 1
                    progress.errors.append(recipient.label)
                    logger.error(f"❌ Failed to send {self.channel.name} to {recipient.label}: {e}")

                await self._report(progress)

            logger.debug(f"✅ Batch {batch_num}/{len(batches)} done ({progress.sent} sent, {progress.failed} failed)")

            # Pause between batches
            if batch_num < len(batches):
                await asyncio.sleep(self.batch_delay_ms / 1000)

        progress.current = ""
        progress.is_complete = True
        await self._report(progress)

        logger.info(f"📊 Broadcast complete: {progress.sent} sent, {progress.failed} failed, {len(skipped)} skipped")
        return DispatchResult(
            sent=progress.sent,
            failed=progress.failed,
            total=progress.total,
            failed_recipients=list(progress.errors),
            skipped_recipients=[r.label for r in skipped],
            batches=len(batches),
        )
