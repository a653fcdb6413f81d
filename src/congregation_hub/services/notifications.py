"""
In-app notifications and shared-resource invitations.
"""

import re
from typing import Any, Dict, List, Optional

from ..core.logger import get_logger
from .repository import TableRepository

logger = get_logger(__name__)

INVITATION_PREVIEW_LENGTH = 150
_TAG_RE = re.compile(r"<[^>]+>")


def _strip_html(text: str) -> str:
    return _TAG_RE.sub("", text or "").strip()


class NotificationService:
    def __init__(self, client=None):
        self.notifications = TableRepository("notifications", client)
        self.invitations = TableRepository("invitations", client)
        self.members = TableRepository("members", client)

    def notify(
        self,
        user_id: str,
        type: str,
        title: str,
        body: str = "",
        link: Optional[str] = None,
    ) -> Dict[str, Any]:
        notification = self.notifications.create(
            {"user_id": user_id, "type": type, "title": title, "body": body, "link": link, "read": False}
        )
        logger.debug(f"🔔 Notified {user_id}: {title}")
        return notification

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[Dict[str, Any]]:
        filters = {"user_id": user_id}
        if unread_only:
            filters["read"] = False
        return self.notifications.list(filters=filters, order_by="created_at", desc=True)

    def get_notification(self, notification_id: str) -> Optional[Dict[str, Any]]:
        return self.notifications.get(notification_id)

    def mark_read(self, notification_id: str) -> Dict[str, Any]:
        return self.notifications.update(notification_id, {"read": True})

    def create_invitation(
        self,
        type: str,
        title: str,
        resource_id: str,
        from_user: Dict[str, Any],
        to_user_id: str,
        content: str = "",
        message: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Shares a resource (such as a note) with another member."""
        return self.invitations.create(
            {
                "type": type,
                "title": title,
                "preview_content": _strip_html(content)[:INVITATION_PREVIEW_LENGTH],
                "content": content,
                "resource_id": resource_id,
                "from_user": from_user,
                "to_user_id": to_user_id,
                "message": message,
            }
        )

    def notify_admins(self, title: str, body: str = "", link: Optional[str] = None, type: str = "system") -> int:
        """Sends a notification to every member whose role is ``admin``."""
        admins = self.members.list(filters={"role": "admin"})
        for admin in admins:
            self.notify(admin["id"], type=type, title=title, body=body, link=link)
        if not admins:
            logger.warning(f"No admins to notify about: {title}")
        return len(admins)
