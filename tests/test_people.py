"""
Member, family and ministry service tests against the in-memory store.
"""

from unittest.mock import Mock

import pytest
from postgrest.exceptions import APIError

from congregation_hub.errors import ConfigurationError, ExternalServiceError, NotFoundError, ValidationError
from congregation_hub.services import FamilyService, MemberService, MinistryService, TableRepository


class TestTableRepository:
    def test_create_stamps_id_and_timestamps_and_drops_none(self, fake_db):
        repo = TableRepository("notes", fake_db)
        record = repo.create({"title": "Hi", "body": None})

        assert record["id"]
        assert record["created_at"] == record["updated_at"]
        assert "body" not in fake_db.rows("notes")[0]

    def test_update_missing_row_raises(self, fake_db):
        with pytest.raises(NotFoundError):
            TableRepository("notes", fake_db).update("nope", {"title": "x"})

    def test_delete_missing_row_raises(self, fake_db):
        with pytest.raises(NotFoundError):
            TableRepository("notes", fake_db).delete("nope")

    def test_none_filter_matches_null(self, fake_db):
        fake_db.seed("members", {"id": "a", "district_id": None}, {"id": "b", "district_id": "d1"})
        rows = TableRepository("members", fake_db).list(filters={"district_id": None})
        assert [r["id"] for r in rows] == ["a"]

    def test_api_error_becomes_external_service_error(self):
        client = Mock()
        client.table.return_value.select.return_value.execute.side_effect = APIError(
            {"message": "boom", "code": "500", "hint": None, "details": None}
        )
        with pytest.raises(ExternalServiceError):
            TableRepository("members", client).list()

    def test_missing_client_is_configuration_error(self, monkeypatch):
        monkeypatch.setattr("congregation_hub.services.repository.get_supabase_client", lambda: None)
        with pytest.raises(ConfigurationError):
            TableRepository("members").list()


class TestMemberService:
    def test_list_sorted_by_last_then_first_name(self, seeded_db):
        members = MemberService(seeded_db).list_members()
        assert [m["id"] for m in members] == ["m1", "m2", "m3"]

    def test_search_is_case_insensitive(self, seeded_db):
        service = MemberService(seeded_db)
        assert [m["id"] for m in service.list_members(search="BOAZ")] == ["m2"]
        assert [m["id"] for m in service.list_members(search="ruth@")] == ["m1"]

    def test_filter_by_ministry(self, seeded_db):
        seeded_db.rows("members")[2]["ministry_ids"] = ["worship"]
        assert [m["id"] for m in MemberService(seeded_db).list_members(ministry_id="worship")] == ["m3"]

    def test_create_normalizes_and_derives_display_name(self, fake_db):
        member = MemberService(fake_db).create_member({"first_name": " Lydia ", "last_name": "Grant", "email": "LYDIA@Example.org "})

        assert member["display_name"] == "Lydia Grant"
        assert member["email"] == "lydia@example.org"
        assert member["ministry_ids"] == []

    def test_create_requires_a_name(self, fake_db):
        with pytest.raises(ValidationError):
            MemberService(fake_db).create_member({"email": "anon@example.org"})

    def test_update_refuses_managed_fields(self, seeded_db):
        with pytest.raises(ValidationError, match="district_id"):
            MemberService(seeded_db).update_member("m1", {"district_id": "d1"})

    def test_update_and_delete(self, seeded_db):
        service = MemberService(seeded_db)
        assert service.update_member("m1", {"phone": "555-0100"})["phone"] == "555-0100"
        service.delete_member("m1")
        assert service.get_member("m1") is None


class TestFamilyService:
    def test_link_roles(self, seeded_db):
        service = FamilyService(seeded_db)
        family = service.create_family({"name": "Adams"}, created_by="admin")

        service.link_member("m1", family["id"], "head")
        service.link_member("m2", family["id"], "spouse")
        linked = service.link_member("m3", family["id"], "child")

        assert linked["head_of_household_id"] == "m1"
        assert linked["spouse_id"] == "m2"
        assert linked["children_ids"] == ["m3"]
        member = MemberService(seeded_db).get_member("m3")
        assert member["family_id"] == family["id"]
        assert member["family_role"] == "child"
        assert {m["id"] for m in service.get_family_members(family["id"])} == {"m1", "m2", "m3"}

    def test_link_to_missing_family_raises(self, seeded_db):
        with pytest.raises(NotFoundError):
            FamilyService(seeded_db).link_member("m1", "missing", "head")

    def test_link_rejects_unknown_role(self, seeded_db):
        with pytest.raises(ValidationError):
            FamilyService(seeded_db).link_member("m1", "f1", "cousin")

    def test_unlink_clears_every_slot(self, seeded_db):
        service = FamilyService(seeded_db)
        family = service.create_family({"name": "Adams"}, created_by="admin")
        service.link_member("m1", family["id"], "head")
        service.link_member("m1", family["id"], "other")

        updated = service.unlink_member("m1", family["id"])

        assert updated["head_of_household_id"] is None
        assert updated["other_member_ids"] == []
        assert MemberService(seeded_db).get_member("m1")["family_id"] is None

    def test_unlink_from_missing_family_is_noop(self, seeded_db):
        assert FamilyService(seeded_db).unlink_member("m1", "missing") is None

    def test_family_by_member(self, seeded_db):
        service = FamilyService(seeded_db)
        family = service.create_family({"name": "Miller"}, created_by="admin")
        service.link_member("m2", family["id"], "head")

        assert service.get_family_by_member("m2")["id"] == family["id"]
        assert service.get_family_by_member("m1") is None
        with pytest.raises(NotFoundError):
            service.get_family_by_member("ghost")


class TestMinistryService:
    def test_roster_kept_in_sync_with_members(self, seeded_db):
        service = MinistryService(seeded_db)
        ministry = service.create_ministry({"name": "Worship", "church_id": "default_church"}, created_by="admin")

        service.add_member(ministry["id"], "m1", as_leader=True)
        updated = service.add_member(ministry["id"], "m2")

        assert updated["member_ids"] == ["m1", "m2"]
        assert updated["leader_ids"] == ["m1"]
        assert MemberService(seeded_db).get_member("m2")["ministry_ids"] == [ministry["id"]]

        updated = service.remove_member(ministry["id"], "m1")
        assert updated["leader_ids"] == []
        assert MemberService(seeded_db).get_member("m1")["ministry_ids"] == []

    def test_soft_delete_clears_member_links(self, seeded_db):
        service = MinistryService(seeded_db)
        ministry = service.create_ministry({"name": "Hospitality", "member_ids": ["m3"]}, created_by="admin")
        assert MemberService(seeded_db).get_member("m3")["ministry_ids"] == [ministry["id"]]

        deleted = service.delete_ministry(ministry["id"])

        assert deleted["is_active"] is False
        assert MemberService(seeded_db).get_member("m3")["ministry_ids"] == []
        assert service.list_ministries() == []

    def test_update_refuses_roster_changes(self, seeded_db):
        service = MinistryService(seeded_db)
        ministry = service.create_ministry({"name": "Youth"}, created_by="admin")
        with pytest.raises(ValidationError):
            service.update_ministry(ministry["id"], {"member_ids": ["m1"]})
