"""
Households and the roles members hold in them.
"""

from typing import Any, Dict, List, Optional

from ..core.logger import get_logger
from ..errors import NotFoundError, ValidationError
from .members import MemberService
from .repository import TableRepository

logger = get_logger(__name__)

FAMILIES_TABLE = "families"
FAMILY_ROLES = ("head", "spouse", "child", "other")


class FamilyService:
    def __init__(self, client=None, member_service: Optional[MemberService] = None):
        self.families = TableRepository(FAMILIES_TABLE, client)
        self.member_service = member_service or MemberService(client)

    def list_families(self, church_id: Optional[str] = None) -> List[Dict[str, Any]]:
        filters = {"church_id": church_id} if church_id else None
        return sorted(self.families.list(filters=filters), key=lambda f: (f.get("name") or "").lower())

    def get_family(self, family_id: str) -> Optional[Dict[str, Any]]:
        return self.families.get(family_id)

    def get_family_members(self, family_id: str) -> List[Dict[str, Any]]:
        return self.member_service.list_members(family_id=family_id)

    def create_family(self, data: Dict[str, Any], created_by: str) -> Dict[str, Any]:
        if not (data.get("name") or "").strip():
            raise ValidationError("Family name is required")
        record = {"children_ids": [], "other_member_ids": [], **data, "name": data["name"].strip(), "created_by": created_by}
        family = self.families.create(record)
        logger.info(f"🏠 Created family {family['id']} ({family['name']})")
        return family

    def update_family(self, family_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self.families.update(family_id, updates)

    def link_member(self, member_id: str, family_id: str, role: str) -> Dict[str, Any]:
        """
        Attach a member to a family in the given role.

        ``head`` and ``spouse`` are single slots and are overwritten;
        ``child`` and ``other`` are lists.
        """
        if role not in FAMILY_ROLES:
            raise ValidationError(f"Unknown family role '{role}' (expected one of {', '.join(FAMILY_ROLES)})")

        family = self.families.require(family_id)
        self.member_service.require_member(member_id)

        updates: Dict[str, Any] = {}
        if role == "head":
            updates["head_of_household_id"] = member_id
        elif role == "spouse":
            updates["spouse_id"] = member_id
        elif role == "child":
            updates["children_ids"] = _append_unique(family.get("children_ids"), member_id)
        else:
            updates["other_member_ids"] = _append_unique(family.get("other_member_ids"), member_id)

        self.member_service.set_fields(member_id, {"family_id": family_id, "family_role": role})
        updated = self.families.update(family_id, updates)
        logger.info(f"🔗 Linked member {member_id} to family {family_id} as {role}")
        return updated

    def unlink_member(self, member_id: str, family_id: str) -> Optional[Dict[str, Any]]:
        """Detach a member from whichever role slots hold them. Missing family is a no-op."""
        self.member_service.set_fields(member_id, {"family_id": None, "family_role": None})

        family = self.families.get(family_id)
        if family is None:
            return None

        updates: Dict[str, Any] = {}
        if family.get("head_of_household_id") == member_id:
            updates["head_of_household_id"] = None
        if family.get("spouse_id") == member_id:
            updates["spouse_id"] = None
        if member_id in (family.get("children_ids") or []):
            updates["children_ids"] = [m for m in family["children_ids"] if m != member_id]
        if member_id in (family.get("other_member_ids") or []):
            updates["other_member_ids"] = [m for m in family["other_member_ids"] if m != member_id]

        logger.info(f"✂️ Unlinked member {member_id} from family {family_id}")
        return self.families.update(family_id, updates, allow_nulls=True)

    def get_family_by_member(self, member_id: str) -> Optional[Dict[str, Any]]:
        member = self.member_service.get_member(member_id)
        if not member:
            raise NotFoundError("members", member_id)
        if not member.get("family_id"):
            return None
        return self.get_family(member["family_id"])


def _append_unique(values: Optional[List[str]], value: str) -> List[str]:
    values = list(values or [])
    if value not in values:
        values.append(value)
    return values
