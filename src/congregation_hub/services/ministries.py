"""
Ministries (serving teams) and their rosters.
"""

from typing import Any, Dict, List, Optional

from ..core.logger import get_logger
from ..errors import ValidationError
from .members import MemberService
from .repository import TableRepository

logger = get_logger(__name__)

MINISTRIES_TABLE = "ministries"


class MinistryService:
    def __init__(self, client=None, member_service: Optional[MemberService] = None):
        self.ministries = TableRepository(MINISTRIES_TABLE, client)
        self.member_service = member_service or MemberService(client)

    def list_ministries(self, church_id: Optional[str] = None) -> List[Dict[str, Any]]:
        filters = {"is_active": True}
        if church_id:
            filters["church_id"] = church_id
        return sorted(self.ministries.list(filters=filters), key=lambda m: (m.get("name") or "").lower())

    def get_ministry(self, ministry_id: str) -> Optional[Dict[str, Any]]:
        return self.ministries.get(ministry_id)

    def create_ministry(self, data: Dict[str, Any], created_by: str) -> Dict[str, Any]:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Ministry name is required")
        record = {
            "leader_ids": [],
            "member_ids": [],
            **data,
            "name": name,
            "is_active": True,
            "created_by": created_by,
        }
        ministry = self.ministries.create(record)
        for member_id in set(ministry.get("member_ids") or []) | set(ministry.get("leader_ids") or []):
            self._sync_member(member_id, ministry["id"], add=True)
        logger.info(f"⛪ Created ministry {ministry['id']} ({name})")
        return ministry

    def update_ministry(self, ministry_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        if "member_ids" in updates or "leader_ids" in updates:
            raise ValidationError("Use the ministry member endpoints to change the roster")
        return self.ministries.update(ministry_id, updates)

    def delete_ministry(self, ministry_id: str) -> Dict[str, Any]:
        ministry = self.ministries.require(ministry_id)
        for member_id in ministry.get("member_ids") or []:
            self._sync_member(member_id, ministry_id, add=False)
        logger.info(f"🗑️ Deactivated ministry {ministry_id}")
        return self.ministries.update(ministry_id, {"is_active": False})

    def add_member(self, ministry_id: str, member_id: str, as_leader: bool = False) -> Dict[str, Any]:
        ministry = self.ministries.require(ministry_id)
        self.member_service.require_member(member_id)

        updates = {"member_ids": _with(ministry.get("member_ids"), member_id)}
        if as_leader:
            updates["leader_ids"] = _with(ministry.get("leader_ids"), member_id)

        updated = self.ministries.update(ministry_id, updates)
        self._sync_member(member_id, ministry_id, add=True)
        return updated

    def remove_member(self, ministry_id: str, member_id: str) -> Dict[str, Any]:
        ministry = self.ministries.require(ministry_id)
        updated = self.ministries.update(
            ministry_id,
            {
                "member_ids": [m for m in ministry.get("member_ids") or [] if m != member_id],
                "leader_ids": [m for m in ministry.get("leader_ids") or [] if m != member_id],
            },
        )
        self._sync_member(member_id, ministry_id, add=False)
        return updated

    def _sync_member(self, member_id: str, ministry_id: str, add: bool) -> None:
        member = self.member_service.get_member(member_id)
        if member is None:
            logger.warning(f"Ministry {ministry_id} references missing member {member_id}")
            return
        ministry_ids = [m for m in member.get("ministry_ids") or [] if m != ministry_id]
        if add:
            ministry_ids.append(ministry_id)
        self.member_service.set_fields(member_id, {"ministry_ids": ministry_ids})


def _with(values: Optional[List[str]], value: str) -> List[str]:
    values = list(values or [])
    if value not in values:
        values.append(value)
    return values
