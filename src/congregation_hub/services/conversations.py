"""
Direct-message conversations between members.

A conversation is a ``direct_messages`` row listing its participants; each
message lives in ``messages`` keyed by ``conversation_id``.
"""

from typing import Any, Dict, List, Optional

from ..core.logger import get_logger
from ..core.utils import utc_now_iso
from ..errors import ValidationError
from .repository import TableRepository

logger = get_logger(__name__)

LAST_MESSAGE_PREVIEW_LENGTH = 100
MESSAGE_TYPES = ("text", "image", "video")


def message_type_for(attachments: Optional[List[Dict[str, Any]]]) -> str:
    """Derives the message type from the first attachment's MIME type."""
    if not attachments:
        return "text"
    mime = (attachments[0].get("type") or "").lower()
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    return "text"


class ConversationService:
    def __init__(self, client=None):
        self.conversations = TableRepository("direct_messages", client)
        self.messages = TableRepository("messages", client)

    def list_conversations(self, user_id: str) -> List[Dict[str, Any]]:
        rows = self.conversations.list_containing("participants", [user_id])
        return sorted(rows, key=lambda c: c.get("last_message_timestamp") or "", reverse=True)

    def find_conversation(self, sender_id: str, recipient_id: str) -> Optional[Dict[str, Any]]:
        for conversation in self.conversations.list_containing("participants", [sender_id]):
            if recipient_id in (conversation.get("participants") or []):
                return conversation
        return None

    def find_or_create_conversation(self, sender_id: str, recipient_id: str) -> Dict[str, Any]:
        conversation = self.find_conversation(sender_id, recipient_id)
        if conversation:
            return conversation

        now = utc_now_iso()
        conversation = self.conversations.create(
            {
                "participants": [sender_id, recipient_id],
                "last_message": "Started a conversation",
                "last_message_author_id": sender_id,
                "last_message_timestamp": now,
                "read_by": [sender_id],
            }
        )
        logger.debug(f"💬 Opened conversation {conversation['id']} between {sender_id} and {recipient_id}")
        return conversation

    def post_message(
        self,
        conversation_id: str,
        author: Dict[str, Any],
        content: str,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Adds a message and refreshes the conversation's last-message preview."""
        if not content and not attachments:
            raise ValidationError("A message needs content or an attachment")

        timestamp = utc_now_iso()
        message = self.messages.create(
            {
                "conversation_id": conversation_id,
                "author": author,
                "content": content,
                "type": message_type_for(attachments),
                "attachments": attachments or [],
                "timestamp": timestamp,
            }
        )
        self.conversations.update(
            conversation_id,
            {
                "last_message": (content or "")[:LAST_MESSAGE_PREVIEW_LENGTH],
                "last_message_author_id": author.get("id"),
                "last_message_timestamp": timestamp,
                "read_by": [author.get("id")],
            },
        )
        return message

    def list_messages(self, conversation_id: str) -> List[Dict[str, Any]]:
        return self.messages.list(filters={"conversation_id": conversation_id}, order_by="timestamp")
