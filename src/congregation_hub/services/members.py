"""
Member directory operations.
"""

from typing import Any, Dict, List, Optional

from ..core.logger import get_logger
from ..errors import ValidationError
from .repository import TableRepository

logger = get_logger(__name__)

MEMBERS_TABLE = "members"

# Fields that only the family/district/ministry services may write
MANAGED_FIELDS = {"family_id", "family_role", "district_id", "district_role", "ministry_ids"}


class MemberService:
    def __init__(self, client=None):
        self.members = TableRepository(MEMBERS_TABLE, client)

    def list_members(
        self,
        church_id: Optional[str] = None,
        district_id: Optional[str] = None,
        family_id: Optional[str] = None,
        ministry_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Lists members, optionally narrowed by church, district, family or
        ministry, and by a case-insensitive substring of name or email.
        """
        filters = {
            key: value
            for key, value in {"church_id": church_id, "district_id": district_id, "family_id": family_id}.items()
            if value
        }
        if ministry_id:
            members = self.members.list_containing("ministry_ids", [ministry_id], filters=filters)
        else:
            members = self.members.list(filters=filters)

        if search:
            needle = search.lower()
            members = [
                m
                for m in members
                if needle in " ".join(
                    str(m.get(field) or "") for field in ("display_name", "first_name", "last_name", "email")
                ).lower()
            ]

        members.sort(key=lambda m: ((m.get("last_name") or "").lower(), (m.get("first_name") or "").lower()))
        return members

    def get_member(self, member_id: str) -> Optional[Dict[str, Any]]:
        return self.members.get(member_id)

    def require_member(self, member_id: str) -> Dict[str, Any]:
        return self.members.require(member_id)

    def is_admin(self, member_id: str) -> bool:
        member = self.members.get(member_id) if member_id else None
        return bool(member) and member.get("role") == "admin"

    def get_members(self, member_ids: List[str]) -> List[Dict[str, Any]]:
        return self.members.list_by_ids(member_ids)

    def create_member(self, data: Dict[str, Any]) -> Dict[str, Any]:
        record = self._normalize(data)
        if not (record.get("display_name") or record.get("first_name") or record.get("last_name")):
            raise ValidationError("A member needs a name")

        if not record.get("display_name"):
            record["display_name"] = " ".join(p for p in (record.get("first_name"), record.get("last_name")) if p)
        record.setdefault("ministry_ids", [])

        member = self.members.create(record)
        logger.info(f"👤 Created member {member['id']} ({member.get('display_name')})")
        return member

    def update_member(self, member_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        blocked = MANAGED_FIELDS.intersection(updates)
        if blocked:
            raise ValidationError(f"Use the family/district/ministry endpoints to change: {', '.join(sorted(blocked))}")
        return self.members.update(member_id, self._normalize(updates))

    def delete_member(self, member_id: str) -> None:
        self.members.delete(member_id)
        logger.info(f"🗑️ Deleted member {member_id}")

    def set_fields(self, member_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Writes managed reference fields; ``None`` clears a field."""
        return self.members.update(member_id, fields, allow_nulls=True)

    @staticmethod
    def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(data)
        if record.get("email"):
            record["email"] = record["email"].strip().lower()
        for field in ("first_name", "last_name", "display_name"):
            if isinstance(record.get(field), str):
                record[field] = record[field].strip()
        return record
