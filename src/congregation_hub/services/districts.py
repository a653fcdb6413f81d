"""
Pastoral-care districts.

A district keeps its roster in ``member_ids``/``co_leader_ids``; each member
record mirrors the placement in ``district_id``/``district_role``. Both sides
are written together by every operation here.
"""

from typing import Any, Dict, List, Optional

from ..core.logger import get_logger
from ..core.utils import display_name
from ..errors import ValidationError
from .district_assignment import ASSIGNMENT_METHODS, AssignmentProposal, plan_assignments
from .members import MemberService
from .repository import TableRepository

logger = get_logger(__name__)

DISTRICTS_TABLE = "districts"
CHURCHES_TABLE = "churches"


def _role_for(member_id: str, district: Dict[str, Any]) -> str:
    if member_id == district.get("leader_id"):
        return "leader"
    if member_id in (district.get("co_leader_ids") or []):
        return "co_leader"
    return "member"


class DistrictService:
    def __init__(self, client=None, member_service: Optional[MemberService] = None):
        self.districts = TableRepository(DISTRICTS_TABLE, client)
        self.churches = TableRepository(CHURCHES_TABLE, client)
        self.member_service = member_service or MemberService(client)

    def list_districts(self, church_id: str) -> List[Dict[str, Any]]:
        districts = self.districts.list(filters={"church_id": church_id, "is_active": True})
        return sorted(districts, key=lambda d: (d.get("name") or "").lower())

    def get_district(self, district_id: str) -> Optional[Dict[str, Any]]:
        return self.districts.get(district_id)

    def get_district_by_leader(self, leader_id: str) -> Optional[Dict[str, Any]]:
        return self.districts.find_one(leader_id=leader_id, is_active=True)

    def create_district(self, data: Dict[str, Any], created_by: str) -> Dict[str, Any]:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("District name is required")
        if not data.get("leader_id"):
            raise ValidationError("A leader must be assigned")
        method = data.get("assignment_method", "manual")
        if method not in ASSIGNMENT_METHODS:
            raise ValidationError(f"Unknown assignment method '{method}'")

        leader = self.member_service.require_member(data["leader_id"])
        member_ids = list(dict.fromkeys([data["leader_id"], *(data.get("member_ids") or [])]))
        leaving = []
        for member_id in member_ids:
            member = leader if member_id == leader["id"] else self.member_service.require_member(member_id)
            previous = self._check_can_leave(member)
            if previous:
                leaving.append((previous["id"], member_id))

        record = {
            **data,
            "name": name,
            "leader_name": data.get("leader_name") or leader.get("display_name") or leader.get("email"),
            "co_leader_ids": list(data.get("co_leader_ids") or []),
            "member_ids": member_ids,
            "assignment_method": method,
            "is_active": True,
            "created_by": created_by,
        }
        district = self.districts.create(record)

        for previous_id, member_id in leaving:
            self._detach(previous_id, member_id)
        for member_id in member_ids:
            self.member_service.set_fields(
                member_id, {"district_id": district["id"], "district_role": _role_for(member_id, district)}
            )

        logger.info(f"🗺️ Created district {district['id']} ({name}) with {len(member_ids)} members")
        return district

    def update_district(self, district_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        if "assignment_method" in updates and updates["assignment_method"] not in ASSIGNMENT_METHODS:
            raise ValidationError(f"Unknown assignment method '{updates['assignment_method']}'")
        return self.districts.update(district_id, updates)

    def add_member(self, district_id: str, member_id: str, role: str = "member") -> Dict[str, Any]:
        if role not in ("member", "co_leader"):
            raise ValidationError("Role must be 'member' or 'co_leader'")

        district = self.districts.require(district_id)
        member = self.member_service.require_member(member_id)

        previous = self._check_can_leave(member, district_id)
        if previous:
            self._detach(previous["id"], member_id, previous)

        member_ids = list(district.get("member_ids") or [])
        if member_id not in member_ids:
            member_ids.append(member_id)
        updates: Dict[str, Any] = {"member_ids": member_ids}
        if role == "co_leader":
            co_leaders = list(district.get("co_leader_ids") or [])
            if member_id not in co_leaders:
                co_leaders.append(member_id)
            updates["co_leader_ids"] = co_leaders

        updated = self.districts.update(district_id, updates)
        self.member_service.set_fields(member_id, {"district_id": district_id, "district_role": role})
        logger.info(f"➕ Added {member_id} to district {district_id} as {role}")
        return updated

    def remove_member(self, district_id: str, member_id: str) -> Dict[str, Any]:
        district = self.districts.require(district_id)
        if district.get("leader_id") == member_id:
            raise ValidationError("Cannot remove the district leader. Assign a new leader first.")

        updated = self._detach(district_id, member_id, district)
        self.member_service.set_fields(member_id, {"district_id": None, "district_role": None})
        logger.info(f"➖ Removed {member_id} from district {district_id}")
        return updated

    def _check_can_leave(self, member: Dict[str, Any], district_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Returns the district ``member`` would leave by joining ``district_id``."""
        previous_id = member.get("district_id")
        if not previous_id or previous_id == district_id:
            return None
        previous = self.districts.get(previous_id)
        if previous is None:
            return None
        if previous.get("leader_id") == member["id"] and previous.get("is_active", True):
            raise ValidationError(
                f"{display_name(member)} leads {previous.get('name') or 'another district'}. Assign a new leader there first."
            )
        return previous

    def _detach(self, district_id: str, member_id: str, district: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        district = district or self.districts.require(district_id)
        return self.districts.update(
            district_id,
            {
                "member_ids": [m for m in district.get("member_ids") or [] if m != member_id],
                "co_leader_ids": [m for m in district.get("co_leader_ids") or [] if m != member_id],
            },
        )

    def get_district_members(self, district_id: str) -> List[str]:
        district = self.get_district(district_id)
        return list((district or {}).get("member_ids") or [])

    def delete_district(self, district_id: str) -> Dict[str, Any]:
        """Soft delete: clears every member's placement and marks the district inactive."""
        district = self.districts.require(district_id)
        for member_id in district.get("member_ids") or []:
            self.member_service.set_fields(member_id, {"district_id": None, "district_role": None})
        logger.info(f"🗑️ Deactivated district {district_id}")
        return self.districts.update(district_id, {"is_active": False})

    def get_district_settings(self, church_id: str) -> Optional[Dict[str, Any]]:
        church = self.churches.get(church_id)
        return (church or {}).get("district_settings")

    def update_district_settings(self, church_id: str, settings: Dict[str, Any]) -> Dict[str, Any]:
        return self.churches.update(church_id, {"district_settings": settings})

    def plan_assignments(self, church_id: str, method: str, reassign: bool = False) -> List[AssignmentProposal]:
        districts = self.list_districts(church_id)
        members = self.member_service.list_members(church_id=church_id)
        return plan_assignments(members, districts, method, reassign=reassign)

    def apply_assignments(self, proposals: List[AssignmentProposal]) -> int:
        applied = 0
        for proposal in proposals:
            self.add_member(proposal.district_id, proposal.member_id)
            applied += 1
        logger.info(f"✅ Applied {applied} district assignments")
        return applied
