"""
Value objects shared by the broadcast channels, dispatcher and manager.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from ..core.utils import display_name

CHANNEL_EMAIL = "email"
CHANNEL_DIRECT_MESSAGE = "direct_message"
CHANNELS = (CHANNEL_EMAIL, CHANNEL_DIRECT_MESSAGE)


@dataclass
class Recipient:
    id: Optional[str] = None
    name: str = "Unknown"
    email: Optional[str] = None

    @classmethod
    def from_member(cls, member: Dict[str, Any]) -> "Recipient":
        return cls(id=member.get("id"), name=display_name(member), email=member.get("email") or None)

    @property
    def label(self) -> str:
        """Name shown in progress updates and failure lists."""
        if self.name and self.name != "Unknown":
            return self.name
        return self.email or "Unknown"


@dataclass
class Sender:
    id: str
    name: str = "Admin"
    avatar_url: Optional[str] = None

    def to_author(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "avatar_url": self.avatar_url}


@dataclass
class Attachment:
    name: str
    url: str
    type: str = "application/octet-stream"

    @property
    def is_media(self) -> bool:
        return self.type.startswith("image/") or self.type.startswith("video/")


@dataclass
class AttachedNote:
    id: str
    title: Optional[str] = None
    content: str = ""


@dataclass
class BroadcastRequest:
    channel: str
    body: str
    recipients: List[Recipient]
    subject: Optional[str] = None
    sender: Optional[Sender] = None
    google_access_token: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)
    note: Optional[AttachedNote] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BroadcastRequest":
        sender = data.get("sender")
        note = data.get("note")
        return cls(
            channel=data.get("channel", CHANNEL_EMAIL),
            body=data.get("body") or "",
            subject=data.get("subject"),
            recipients=[r if isinstance(r, Recipient) else Recipient(**r) for r in data.get("recipients") or []],
            sender=Sender(**sender) if isinstance(sender, dict) else sender,
            google_access_token=data.get("google_access_token"),
            attachments=[a if isinstance(a, Attachment) else Attachment(**a) for a in data.get("attachments") or []],
            note=AttachedNote(**note) if isinstance(note, dict) else note,
        )


@dataclass
class BroadcastProgress:
    """Counters for a running broadcast, mutated only by the dispatch task."""

    total: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    current: str = ""
    is_complete: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def percent(self) -> int:
        if not self.total:
            return 100 if self.is_complete else 0
        return round((self.sent + self.failed) * 100 / self.total)

    def snapshot(self) -> Dict[str, Any]:
        data = asdict(self)
        data["errors"] = list(self.errors)
        data["percent"] = self.percent
        return data


@dataclass
class DispatchResult:
    sent: int
    failed: int
    total: int
    failed_recipients: List[str]
    skipped_recipients: List[str]
    batches: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
