"""Tests for Asana payload normalization."""
from datetime import date, datetime

from asanadw.asana.normalizer import (
    normalize_comment,
    normalize_portfolio,
    normalize_project,
    normalize_status_update,
    normalize_task,
    normalize_team,
    referenced_users,
    task_memberships,
)
from conftest import make_comment, make_project, make_task, make_user


class TestNormalizeTask:
    def test_core_fields(self):
        fields = normalize_task(make_task("10"))
        assert fields["gid"] == "10"
        assert fields["name"] == "Task 10"
        assert fields["assignee_gid"] == "501"
        assert fields["modified_at"] == datetime(2025, 3, 1, 12, 0)
        assert fields["due_on"] == date(2025, 3, 15)
        assert fields["is_completed"] is False
        assert fields["is_subtask"] is False

    def test_subtask(self):
        fields = normalize_task(make_task("11", parent_gid="10"))
        assert fields["parent_gid"] == "10"
        assert fields["is_subtask"] is True

    def test_unassigned(self):
        raw = make_task("12")
        raw["assignee"] = None
        assert normalize_task(raw)["assignee_gid"] is None

    def test_offset_timestamp_converted_to_utc(self):
        raw = make_task("13", completed=True, completed_at="2025-03-01T14:00:00+02:00")
        assert normalize_task(raw)["completed_at"] == datetime(2025, 3, 1, 12, 0)

    def test_bad_timestamp_is_none(self):
        assert normalize_task(make_task("14", modified_at="yesterday"))["modified_at"] is None


class TestTaskMemberships:
    def test_project_and_section(self):
        assert task_memberships(make_task("10")) == [("2000", "700")]

    def test_without_section(self):
        assert task_memberships(make_task("10", section_gid=None)) == [("2000", None)]

    def test_no_memberships(self):
        raw = make_task("10")
        raw["memberships"] = None
        assert task_memberships(raw) == []


class TestReferencedUsers:
    def test_dedupes_and_prefers_email(self):
        items = [
            {"assignee": make_user("1", "Ada")},
            {"assignee": make_user("1", "Ada", email="ada@example.com")},
            {"assignee": make_user("2", "Grace")},
            {"assignee": None},
        ]
        users = {u["gid"]: u for u in referenced_users(items, "assignee")}
        assert set(users) == {"1", "2"}
        assert users["1"]["email"] == "ada@example.com"

    def test_multiple_keys(self):
        items = [{"owner": make_user("1"), "created_by": make_user("2")}]
        assert {u["gid"] for u in referenced_users(items, "owner", "created_by")} == {"1", "2"}


class TestOtherResources:
    def test_project(self):
        fields = normalize_project(make_project(archived=True))
        assert fields["owner_gid"] == "500"
        assert fields["team_gid"] == "300"
        assert fields["workspace_gid"] == "1000"
        assert fields["is_archived"] is True

    def test_team_workspace_fallback_to_organization(self):
        raw = {"gid": "300", "name": "Platform", "organization": {"gid": "1000"}}
        assert normalize_team(raw)["workspace_gid"] == "1000"
        assert normalize_team(raw, "2222")["workspace_gid"] == "2222"

    def test_comment(self):
        fields = normalize_comment(make_comment("90", author_gid="502"), "10")
        assert fields["task_gid"] == "10"
        assert fields["author_gid"] == "502"
        assert fields["story_type"] == "comment_added"

    def test_status_update_parent_defaults_to_caller(self):
        raw = {"gid": "80", "title": "On track", "status_type": "on_track", "created_by": make_user("500")}
        fields = normalize_status_update(raw, "2000")
        assert fields["parent_gid"] == "2000"
        assert fields["parent_type"] == "project"
        assert fields["author_gid"] == "500"

    def test_portfolio(self):
        raw = {"gid": "555", "name": "Q3", "owner": make_user("500"), "workspace": {"gid": "1000"}, "public": False}
        fields = normalize_portfolio(raw)
        assert fields["owner_gid"] == "500"
        assert fields["is_public"] is False
