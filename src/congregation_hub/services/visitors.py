"""
Visitor pipeline: connect cards, kanban boards and stage moves.
"""

from typing import Any, Dict, List, Optional

from ..core.logger import get_logger
from ..core.utils import new_id, utc_now_iso
from ..errors import NotFoundError, ValidationError
from .notifications import NotificationService
from .repository import TableRepository

logger = get_logger(__name__)

VISITOR_STATUSES = ("new", "contacted", "archived")
BOARD_TYPES = ("sunday_service", "event", "custom")
RECENT_VISITOR_LIMIT = 20
CONNECT_CARD_TEXT_FIELDS = ("first_name", "last_name", "email", "phone", "prayer_request", "source")

DEFAULT_BOARD_NAME = "Sunday Service Visitors"
DEFAULT_STAGES = [
    {"name": "New Guest", "color": "#3B82F6"},
    {"name": "Contacted", "color": "#F59E0B"},
    {"name": "Second Visit", "color": "#8B5CF6"},
    {"name": "Ready for Member", "color": "#EC4899"},
    {"name": "Member", "color": "#10B981"},
]


def _number_stages(stages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{**stage, "order": index} for index, stage in enumerate(stages)]


class PipelineBoardService:
    """Kanban boards and their ordered stages."""

    def __init__(self, client=None):
        self.boards = TableRepository("pipeline_boards", client)

    def list_boards(self) -> List[Dict[str, Any]]:
        return self.boards.list(filters={"archived": False}, order_by="created_at")

    def get_board(self, board_id: str) -> Optional[Dict[str, Any]]:
        return self.boards.get(board_id)

    def require_board(self, board_id: str) -> Dict[str, Any]:
        return self.boards.require(board_id)

    def find_board_by_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        return self.boards.find_one(linked_event_id=event_id, archived=False)

    def create_board(
        self,
        name: str,
        created_by: str,
        type: str = "custom",
        stages: Optional[List[Dict[str, Any]]] = None,
        linked_event_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not name or not name.strip():
            raise ValidationError("Board name is required")
        if type not in BOARD_TYPES:
            raise ValidationError(f"Unknown board type '{type}'")

        stages = _number_stages(
            [
                {"id": new_id(), "name": stage["name"], "color": stage.get("color", "#6B7280")}
                for stage in (stages or DEFAULT_STAGES)
            ]
        )
        board = self.boards.create(
            {
                "name": name.strip(),
                "type": type,
                "linked_event_id": linked_event_id,
                "stages": stages,
                "archived": False,
                "created_by": created_by,
            }
        )
        logger.info(f"📋 Created pipeline board {board['id']} ({board['name']}) with {len(stages)} stages")
        return board

    def update_board(self, board_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        if "stages" in updates:
            raise ValidationError("Use the stage operations to change stages")
        return self.boards.update(board_id, updates)

    def archive_board(self, board_id: str) -> Dict[str, Any]:
        return self.boards.update(board_id, {"archived": True})

    def add_stage(self, board_id: str, name: str, color: str = "#6B7280") -> Dict[str, Any]:
        board = self.boards.require(board_id)
        stages = list(board.get("stages") or [])
        stages.append({"id": new_id(), "name": name, "color": color})
        return self.boards.update(board_id, {"stages": _number_stages(stages)})

    def update_stage(self, board_id: str, stage_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        board = self.boards.require(board_id)
        stages = board.get("stages") or []
        if not any(stage["id"] == stage_id for stage in stages):
            raise NotFoundError("pipeline_stages", stage_id)
        allowed = {k: v for k, v in updates.items() if k in ("name", "color")}
        stages = [{**stage, **allowed} if stage["id"] == stage_id else stage for stage in stages]
        return self.boards.update(board_id, {"stages": stages})

    def delete_stage(self, board_id: str, stage_id: str) -> Dict[str, Any]:
        board = self.boards.require(board_id)
        stages = board.get("stages") or []
        remaining = [stage for stage in stages if stage["id"] != stage_id]
        if len(remaining) == len(stages):
            raise NotFoundError("pipeline_stages", stage_id)
        return self.boards.update(board_id, {"stages": _number_stages(remaining)})

    def reorder_stages(self, board_id: str, stage_ids: List[str]) -> Dict[str, Any]:
        """Puts stages in the order given; every id must belong to the board."""
        board = self.boards.require(board_id)
        by_id = {stage["id"]: stage for stage in board.get("stages") or []}
        for stage_id in stage_ids:
            if stage_id not in by_id:
                raise NotFoundError("pipeline_stages", stage_id)
        ordered = [by_id[stage_id] for stage_id in stage_ids]
        ordered += [stage for stage_id, stage in by_id.items() if stage_id not in stage_ids]
        return self.boards.update(board_id, {"stages": _number_stages(ordered)})

    def initialize_default_board(self, created_by: str = "system") -> Dict[str, Any]:
        existing = self.boards.find_one(type="sunday_service", archived=False)
        if existing:
            return existing
        return self.create_board(DEFAULT_BOARD_NAME, created_by, type="sunday_service")


class VisitorService:
    def __init__(
        self,
        client=None,
        board_service: Optional[PipelineBoardService] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        self.visitors = TableRepository("visitors", client)
        self.board_service = board_service or PipelineBoardService(client)
        self.notification_service = notification_service or NotificationService(client)

    def submit_connect_card(self, data: Dict[str, Any], source: str = "qr-code") -> Dict[str, Any]:
        """
        Records a connect card as a new visitor on the default board.

        Only the card's own fields are kept; anything else in ``data`` is dropped.
        """
        card = {field: data.get(field) for field in CONNECT_CARD_TEXT_FIELDS}
        if any(value is not None and not isinstance(value, str) for value in card.values()):
            raise ValidationError("Connect card fields must be text")
        card = {field: (value or "").strip() or None for field, value in card.items()}

        first_name = card["first_name"]
        if not first_name:
            raise ValidationError("First name is required")
        if not (card["email"] or card["phone"]):
            raise ValidationError("An email or phone number is required")

        board = self.board_service.initialize_default_board()
        stages = sorted(board.get("stages") or [], key=lambda s: s.get("order", 0))

        visitor = self.visitors.create(
            {
                **card,
                "email": card["email"].lower() if card["email"] else None,
                "is_first_time": bool(data["is_first_time"]) if "is_first_time" in data else None,
                "status": "new",
                "board_id": board["id"],
                "pipeline_stage": stages[0]["id"] if stages else None,
                "source": card["source"] or source,
                "audit_log": [],
            }
        )
        name = f"{first_name} {card['last_name'] or ''}".strip()
        logger.info(f"👋 New visitor {visitor['id']} ({name}) from {visitor.get('source')}")

        self.notification_service.notify_admins(
            title="New connect card",
            body=f"{name} filled out a connect card",
            link="/admin/connect",
            type="visitor",
        )
        return visitor

    def get_visitor(self, visitor_id: str) -> Optional[Dict[str, Any]]:
        return self.visitors.get(visitor_id)

    def list_visitors(self, board_id: Optional[str] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        filters = {key: value for key, value in {"board_id": board_id, "status": status}.items() if value}
        return self.visitors.list(filters=filters, order_by="created_at", desc=True)

    def recent_visitors(self) -> List[Dict[str, Any]]:
        return self.visitors.list(order_by="created_at", desc=True, limit=RECENT_VISITOR_LIMIT)

    def move_visitor(self, visitor_id: str, stage_id: str, actor: str) -> Dict[str, Any]:
        visitor = self.visitors.require(visitor_id)
        board_id = visitor.get("board_id")
        board = self.board_service.require_board(board_id) if board_id else self.board_service.initialize_default_board()

        stage_ids = [stage["id"] for stage in board.get("stages") or []]
        if stage_id not in stage_ids:
            raise ValidationError(f"Stage '{stage_id}' is not on board '{board['name']}'")

        entry = {
            "action": "stage_change",
            "from": visitor.get("pipeline_stage"),
            "to": stage_id,
            "by": actor,
            "at": utc_now_iso(),
        }
        return self.visitors.update(
            visitor_id,
            {
                "board_id": board["id"],
                "pipeline_stage": stage_id,
                "audit_log": list(visitor.get("audit_log") or []) + [entry],
            },
        )

    def update_status(self, visitor_id: str, status: str, actor: Optional[str] = None) -> Dict[str, Any]:
        if status not in VISITOR_STATUSES:
            raise ValidationError(f"Unknown visitor status '{status}'")
        visitor = self.visitors.require(visitor_id)
        entry = {"action": "status_change", "from": visitor.get("status"), "to": status, "by": actor, "at": utc_now_iso()}
        return self.visitors.update(
            visitor_id, {"status": status, "audit_log": list(visitor.get("audit_log") or []) + [entry]}
        )

    def delete_visitor(self, visitor_id: str) -> None:
        self.visitors.delete(visitor_id)

    def group_by_stage(self, board: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Builds kanban columns for ``board``.

        Every stage appears in ``order`` even when empty. Visitors are newest
        first; visitors whose stage was deleted land in the first column.
        """
        stages = sorted(board.get("stages") or [], key=lambda s: s.get("order", 0))
        columns = {stage["id"]: {**stage, "visitors": []} for stage in stages}
        if not columns:
            return []

        first_id = stages[0]["id"]
        for visitor in self.list_visitors(board_id=board["id"]):
            if visitor.get("status") == "archived":
                continue
            columns.get(visitor.get("pipeline_stage"), columns[first_id])["visitors"].append(visitor)

        for column in columns.values():
            column["visitors"].sort(key=lambda v: v.get("created_at") or "", reverse=True)
        return [columns[stage["id"]] for stage in stages]
