"""
Visitor pipeline tests: connect cards, stage moves, kanban grouping and boards.
"""

import pytest

from congregation_hub.errors import NotFoundError, ValidationError
from congregation_hub.services import NotificationService, PipelineBoardService, VisitorService
from congregation_hub.services.visitors import DEFAULT_BOARD_NAME, DEFAULT_STAGES


@pytest.fixture
def boards(fake_db):
    return PipelineBoardService(fake_db)


@pytest.fixture
def visitors(fake_db, boards):
    fake_db.seed("members", {"id": "admin1", "role": "admin"}, {"id": "m1", "role": "member"})
    return VisitorService(fake_db, boards, NotificationService(fake_db))


def card(**fields):
    return {"first_name": "Lydia", "last_name": "Grant", "email": "Lydia@Example.org", **fields}


class TestPipelineBoards:
    def test_default_board_is_created_once(self, boards):
        first = boards.initialize_default_board()
        second = boards.initialize_default_board()

        assert first["id"] == second["id"]
        assert first["name"] == DEFAULT_BOARD_NAME
        assert first["type"] == "sunday_service"
        assert [s["name"] for s in first["stages"]] == [s["name"] for s in DEFAULT_STAGES]
        assert [s["order"] for s in first["stages"]] == [0, 1, 2, 3, 4]
        assert first["stages"][0]["color"] == "#3B82F6"

    def test_stage_ids_are_unique(self, boards):
        board = boards.create_board("Easter", created_by="admin", type="event", linked_event_id="e1")
        assert len({s["id"] for s in board["stages"]}) == 5
        assert boards.find_board_by_event("e1")["id"] == board["id"]

    def test_create_validates(self, boards):
        with pytest.raises(ValidationError):
            boards.create_board(" ", created_by="admin")
        with pytest.raises(ValidationError):
            boards.create_board("X", created_by="admin", type="secret")

    def test_add_update_delete_stage(self, boards):
        board = boards.create_board("Custom", created_by="admin", stages=[{"name": "One"}, {"name": "Two"}])

        board = boards.add_stage(board["id"], "Three", "#000000")
        assert [(s["name"], s["order"]) for s in board["stages"]] == [("One", 0), ("Two", 1), ("Three", 2)]

        two_id = board["stages"][1]["id"]
        board = boards.update_stage(board["id"], two_id, {"name": "Second", "order": 99})
        assert board["stages"][1]["name"] == "Second"
        assert board["stages"][1]["order"] == 1

        board = boards.delete_stage(board["id"], two_id)
        assert [(s["name"], s["order"]) for s in board["stages"]] == [("One", 0), ("Three", 1)]

        with pytest.raises(NotFoundError):
            boards.delete_stage(board["id"], two_id)

    def test_reorder_stages(self, boards):
        board = boards.create_board("Custom", created_by="admin", stages=[{"name": "A"}, {"name": "B"}, {"name": "C"}])
        a, b, c = [s["id"] for s in board["stages"]]

        board = boards.reorder_stages(board["id"], [c, a, b])
        assert [(s["name"], s["order"]) for s in board["stages"]] == [("C", 0), ("A", 1), ("B", 2)]

        with pytest.raises(NotFoundError):
            boards.reorder_stages(board["id"], [a, "bogus"])

    def test_archive_hides_board(self, boards):
        board = boards.create_board("Old", created_by="admin")
        boards.archive_board(board["id"])
        assert boards.list_boards() == []


class TestVisitorService:
    def test_connect_card_creates_new_visitor_on_first_stage(self, visitors, fake_db):
        visitor = visitors.submit_connect_card(card(prayer_request="Healing"))

        board = fake_db.rows("pipeline_boards")[0]
        assert visitor["status"] == "new"
        assert visitor["board_id"] == board["id"]
        assert visitor["pipeline_stage"] == board["stages"][0]["id"]
        assert visitor["source"] == "qr-code"
        assert visitor["audit_log"] == []
        assert visitor["email"] == "lydia@example.org"

    def test_connect_card_notifies_admins(self, visitors, fake_db):
        visitors.submit_connect_card(card())

        notifications = fake_db.rows("notifications")
        assert [n["user_id"] for n in notifications] == ["admin1"]
        assert notifications[0]["read"] is False
        assert "Lydia Grant" in notifications[0]["body"]

    def test_connect_card_validation(self, visitors):
        with pytest.raises(ValidationError):
            visitors.submit_connect_card({"first_name": ""})
        with pytest.raises(ValidationError):
            visitors.submit_connect_card({"first_name": "Sam"})
        with pytest.raises(ValidationError):
            visitors.submit_connect_card({"first_name": ["Sam"], "phone": "555"})

    def test_connect_card_keeps_only_card_fields(self, visitors, fake_db):
        visitor = visitors.submit_connect_card(
            card(id="chosen-id", created_at="1999-01-01", status="archived", role="admin", is_first_time=False)
        )

        stored = fake_db.rows("visitors")[0]
        assert visitor["id"] != "chosen-id"
        assert stored["created_at"] != "1999-01-01"
        assert stored["status"] == "new"
        assert "role" not in stored
        assert stored["is_first_time"] is False
        assert stored["first_name"] == "Lydia"

    def test_move_visitor_appends_audit_entry(self, visitors, fake_db):
        visitor = visitors.submit_connect_card(card())
        stages = fake_db.rows("pipeline_boards")[0]["stages"]

        moved = visitors.move_visitor(visitor["id"], stages[1]["id"], actor="admin1")

        assert moved["pipeline_stage"] == stages[1]["id"]
        entry = moved["audit_log"][-1]
        assert entry["action"] == "stage_change"
        assert entry["from"] == stages[0]["id"]
        assert entry["to"] == stages[1]["id"]
        assert entry["by"] == "admin1"
        assert entry["at"]

    def test_move_to_unknown_stage(self, visitors):
        visitor = visitors.submit_connect_card(card())
        with pytest.raises(ValidationError):
            visitors.move_visitor(visitor["id"], "not-a-stage", actor="admin1")

    def test_update_status(self, visitors):
        visitor = visitors.submit_connect_card(card())
        updated = visitors.update_status(visitor["id"], "contacted", actor="admin1")

        assert updated["status"] == "contacted"
        assert updated["audit_log"][-1]["action"] == "status_change"
        with pytest.raises(ValidationError):
            visitors.update_status(visitor["id"], "lost")

    def test_recent_visitors_limited_to_twenty(self, visitors, fake_db):
        fake_db.seed("visitors", *[{"id": f"v{i}", "created_at": f"2026-01-{i + 1:02d}"} for i in range(25)])

        recent = visitors.recent_visitors()

        assert len(recent) == 20
        assert recent[0]["id"] == "v24"

    def test_group_by_stage(self, visitors, boards, fake_db):
        board = boards.initialize_default_board()
        stages = board["stages"]
        fake_db.seed(
            "visitors",
            {"id": "old", "board_id": board["id"], "pipeline_stage": stages[0]["id"], "status": "new", "created_at": "2026-01-01"},
            {"id": "new", "board_id": board["id"], "pipeline_stage": stages[0]["id"], "status": "new", "created_at": "2026-02-01"},
            {"id": "orphan", "board_id": board["id"], "pipeline_stage": "deleted-stage", "status": "new", "created_at": "2026-01-15"},
            {"id": "later", "board_id": board["id"], "pipeline_stage": stages[2]["id"], "status": "contacted", "created_at": "2026-01-10"},
            {"id": "gone", "board_id": board["id"], "pipeline_stage": stages[2]["id"], "status": "archived", "created_at": "2026-01-11"},
        )

        columns = visitors.group_by_stage(board)

        assert [c["name"] for c in columns] == [s["name"] for s in DEFAULT_STAGES]
        assert [v["id"] for v in columns[0]["visitors"]] == ["new", "orphan", "old"]
        assert [v["id"] for v in columns[2]["visitors"]] == ["later"]
        assert all(columns[i]["visitors"] == [] for i in (1, 3, 4))

    def test_delete_visitor(self, visitors):
        visitor = visitors.submit_connect_card(card())
        visitors.delete_visitor(visitor["id"])
        assert visitors.get_visitor(visitor["id"]) is None
