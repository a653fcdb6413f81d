#!/usr/bin/env python3
"""
Automatic district assignment.

Proposes member -> district placements for the three automatic methods
(geographic by ZIP code, alphabetic by last name, affinity by shared
interests). Proposals are plain data; ``DistrictService.apply_assignments``
writes them.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from ..core.logger import get_logger
from ..core.utils import display_name, last_name_initial, normalize_postal_code
from ..errors import ValidationError

logger = get_logger(__name__)

ASSIGNMENT_METHODS = ("manual", "geographic", "alphabetic", "affinity")


@dataclass
class AssignmentProposal:
    member_id: str
    member_name: str
    district_id: str
    district_name: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _member_postal_code(member: Dict[str, Any]) -> Optional[str]:
    address = member.get("address") or {}
    return normalize_postal_code(address.get("postal_code") or member.get("postal_code"))


def _match_geographic(member: Dict[str, Any], districts: List[Dict[str, Any]]):
    postal_code = _member_postal_code(member)
    if not postal_code:
        return None, None
    for district in districts:
        zip_codes = {normalize_postal_code(z) for z in district.get("zip_codes") or []}
        if postal_code in zip_codes:
            return district, f"ZIP {postal_code}"
    return None, None


def _match_alphabetic(member: Dict[str, Any], districts: List[Dict[str, Any]]):
    initial = last_name_initial(member)
    if not initial:
        return None, None
    for district in districts:
        start = (district.get("alpha_start") or "").strip().upper()[:1]
        end = (district.get("alpha_end") or "").strip().upper()[:1]
        if start and end and start <= initial <= end:
            return district, f"last name {initial} in {start}-{end}"
    return None, None


def _match_affinity(member: Dict[str, Any], districts: List[Dict[str, Any]], sizes: Dict[str, int]):
    interests = {i.strip().lower() for i in member.get("interests") or [] if i and i.strip()}
    if not interests:
        return None, None

    best = None
    best_overlap = set()
    best_key = None
    for district in districts:
        tags = {t.strip().lower() for t in district.get("affinity_tags") or [] if t and t.strip()}
        overlap = interests & tags
        if not overlap:
            continue
        # Most shared interests first, then the smaller district, then name
        key = (-len(overlap), sizes.get(district["id"], 0), (district.get("name") or "").lower())
        if best_key is None or key < best_key:
            best, best_key = district, key
            best_overlap = overlap

    if best is None:
        return None, None
    return best, "shared interests: " + ", ".join(sorted(best_overlap))


def plan_assignments(
    members: List[Dict[str, Any]],
    districts: List[Dict[str, Any]],
    method: str,
    reassign: bool = False,
) -> List[AssignmentProposal]:
    """
    Propose district placements for ``members``.

    Args:
        members: Member records
        districts: Candidate (active) district records
        method: One of ``ASSIGNMENT_METHODS``
        reassign: Also propose moves for members who already have a district

    Returns:
        One proposal per member that matched a district. ``manual`` never
        proposes anything, and district leaders are never moved.
    """
    if method not in ASSIGNMENT_METHODS:
        raise ValidationError(f"Unknown assignment method '{method}'")
    if method == "manual":
        return []

    active = [d for d in districts if d.get("is_active", True)]
    # Running sizes so affinity ties spread members across districts
    sizes = {d["id"]: len(d.get("member_ids") or []) for d in active}
    leaders = {d.get("leader_id") for d in districts if d.get("leader_id")}
    proposals: List[AssignmentProposal] = []

    for member in members:
        if member.get("district_id") and not reassign:
            continue
        # Leaders stay with the district they lead
        if member["id"] in leaders or member.get("district_role") == "leader":
            continue

        if method == "geographic":
            district, reason = _match_geographic(member, active)
        elif method == "alphabetic":
            district, reason = _match_alphabetic(member, active)
        else:
            district, reason = _match_affinity(member, active, sizes)

        if district is None or district["id"] == member.get("district_id"):
            continue

        sizes[district["id"]] = sizes.get(district["id"], 0) + 1
        proposals.append(
            AssignmentProposal(
                member_id=member["id"],
                member_name=display_name(member),
                district_id=district["id"],
                district_name=district.get("name", ""),
                reason=reason,
            )
        )

    logger.info(f"🧭 Planned {len(proposals)} {method} assignments for {len(members)} members")
    return proposals
