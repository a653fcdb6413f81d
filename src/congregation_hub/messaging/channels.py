"""
Broadcast delivery channels.

A channel knows which recipient field it needs (``identifier``) and how to
deliver one message (``deliver``). Blocking client calls run in a worker
thread so the event loop stays free during a broadcast.
"""

import asyncio
import base64
from typing import Dict, List, Optional

import requests

from ..core.http_client import HTTPClientPool, get_http_client
from ..core.logger import get_logger
from ..errors import DeliveryError
from ..services.conversations import ConversationService
from ..services.notifications import NotificationService
from .models import CHANNEL_DIRECT_MESSAGE, CHANNEL_EMAIL, BroadcastRequest, Recipient

logger = get_logger(__name__)

GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"


def compose_email_body(request: BroadcastRequest) -> str:
    """Message body with the attached note, media and file links appended as text."""
    body = request.body
    if request.note:
        body += f"\n\n--- Attached Note: {request.note.title or 'Untitled'} ---\n{request.note.content}"
    media = [a for a in request.attachments if a.is_media]
    files = [a for a in request.attachments if not a.is_media]
    if media:
        body += "\n\nMedia:\n" + "\n".join(f"- {a.name}: {a.url}" for a in media)
    if files:
        body += "\n\nAttached Files:\n" + "\n".join(f"- {a.name}: {a.url}" for a in files)
    return body


def encode_email(to: str, subject: str, body: str) -> str:
    """RFC 2822 text message, base64url-encoded without padding as Gmail expects."""
    message = "\r\n".join(
        [
            f"To: {to}",
            f"Subject: {subject}",
            "Content-Type: text/plain; charset=utf-8",
            "",
            body,
        ]
    )
    return base64.urlsafe_b64encode(message.encode("utf-8")).decode("ascii").rstrip("=")


class Channel:
    name = ""

    def identifier(self, recipient: Recipient) -> Optional[str]:
        raise NotImplementedError

    async def deliver(self, recipient: Recipient, request: BroadcastRequest) -> None:
        """Sends one message; raises on failure."""
        raise NotImplementedError


class EmailChannel(Channel):
    name = CHANNEL_EMAIL

    def __init__(self, http_client: Optional[HTTPClientPool] = None):
        self.http_client = http_client or get_http_client()

    def identifier(self, recipient: Recipient) -> Optional[str]:
        return recipient.email

    async def deliver(self, recipient: Recipient, request: BroadcastRequest) -> None:
        raw = encode_email(recipient.email, request.subject or "", compose_email_body(request))
        headers = {"Authorization": f"Bearer {request.google_access_token}", "Content-Type": "application/json"}

        try:
            response = await asyncio.to_thread(self.http_client.post, GMAIL_SEND_URL, json={"raw": raw}, headers=headers)
        except requests.RequestException as e:
            raise DeliveryError(f"Gmail request failed: {e}") from e

        if not response.ok:
            raise DeliveryError(self._error_message(response))

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            return response.json().get("error", {}).get("message") or "Failed to send"
        except ValueError:
            return f"Failed to send (HTTP {response.status_code})"


class DirectMessageChannel(Channel):
    name = CHANNEL_DIRECT_MESSAGE

    def __init__(
        self,
        conversation_service: Optional[ConversationService] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        self.conversation_service = conversation_service or ConversationService()
        self.notification_service = notification_service or NotificationService()

    def identifier(self, recipient: Recipient) -> Optional[str]:
        return recipient.id

    async def deliver(self, recipient: Recipient, request: BroadcastRequest) -> None:
        await asyncio.to_thread(self._send, recipient, request)

    def _send(self, recipient: Recipient, request: BroadcastRequest) -> None:
        sender = request.sender
        conversation = self.conversation_service.find_or_create_conversation(sender.id, recipient.id)

        attachments: List[Dict[str, str]] = [
            {"name": a.name, "url": a.url, "type": a.type} for a in request.attachments
        ]
        if request.note:
            attachments.append(
                {"name": request.note.title or "Untitled Note", "url": f"note:{request.note.id}", "type": "note"}
            )

        self.conversation_service.post_message(conversation["id"], sender.to_author(), request.body, attachments)

        if request.note:
            try:
                self.notification_service.create_invitation(
                    type="note",
                    title=request.note.title or "Untitled Note",
                    resource_id=request.note.id,
                    from_user=sender.to_author(),
                    to_user_id=recipient.id,
                    content=request.note.content,
                    message=request.body,
                )
            except Exception as e:
                logger.warning(f"⚠️ Could not share note {request.note.id} with {recipient.id}: {e}")


def build_channel(name: str, **kwargs) -> Channel:
    if name == CHANNEL_EMAIL:
        return EmailChannel(**kwargs)
    if name == CHANNEL_DIRECT_MESSAGE:
        return DirectMessageChannel(**kwargs)
    raise ValueError(f"Unknown channel '{name}'")
