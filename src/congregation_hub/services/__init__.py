"""
Service layer over the Supabase tables.
"""

from .conversations import ConversationService
from .district_assignment import ASSIGNMENT_METHODS, AssignmentProposal, plan_assignments
from .districts import DistrictService
from .events import EventService
from .families import FamilyService
from .members import MemberService
from .ministries import MinistryService
from .notifications import NotificationService
from .payments import PaymentService, build_quote
from .places import AddressComponents, PlacesService
from .repository import TableRepository
from .visitors import PipelineBoardService, VisitorService

__all__ = [
    "ASSIGNMENT_METHODS",
    "AddressComponents",
    "AssignmentProposal",
    "ConversationService",
    "DistrictService",
    "EventService",
    "FamilyService",
    "MemberService",
    "MinistryService",
    "NotificationService",
    "PaymentService",
    "PipelineBoardService",
    "PlacesService",
    "TableRepository",
    "VisitorService",
    "build_quote",
    "plan_assignments",
]
