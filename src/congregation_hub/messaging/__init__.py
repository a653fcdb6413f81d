"""
Bulk messaging: delivery channels, the batch dispatcher and background jobs.
"""

from .channels import DirectMessageChannel, EmailChannel, build_channel
from .dispatcher import BroadcastDispatcher, partition_recipients, validate_request
from .manager import BroadcastManager
from .models import (
    CHANNEL_DIRECT_MESSAGE,
    CHANNEL_EMAIL,
    AttachedNote,
    Attachment,
    BroadcastProgress,
    BroadcastRequest,
    DispatchResult,
    Recipient,
    Sender,
)

__all__ = [
    "CHANNEL_DIRECT_MESSAGE",
    "CHANNEL_EMAIL",
    "AttachedNote",
    "Attachment",
    "BroadcastDispatcher",
    "BroadcastManager",
    "BroadcastProgress",
    "BroadcastRequest",
    "DirectMessageChannel",
    "DispatchResult",
    "EmailChannel",
    "Recipient",
    "Sender",
    "build_channel",
    "partition_recipients",
    "validate_request",
]
