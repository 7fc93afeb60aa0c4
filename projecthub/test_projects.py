"""
projecthub/test_projects.py

Project aggregate: creation with owner, CRUD authorization, member
management and the single-owner invariant.

Run:
    pytest projecthub/test_projects.py -v
"""

import pytest

from projecthub import projects
from projecthub.errors import DuplicateMembership, Forbidden, InvariantViolation, NotFound, ValidationError
from projecthub.membership_store import MembershipStore
from projecthub.models import MemberRole, ProjectStatus


def owner_count(conn, project_id):
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM project_members WHERE project_id = ? AND role = 'owner'",
        (project_id,),
    ).fetchone()
    return row["n"]


# ---------------------------------------------------------
# Creation
# ---------------------------------------------------------
class TestCreateProject:

    def test_creator_is_sole_owner(self, conn, users):
        proj = projects.create_project(conn, {"name": "X"}, users["owner"].id)

        members = projects.list_members(conn, proj.id, users["owner"].id)
        assert [(m.user_id, m.role) for m in members] == [(users["owner"].id, MemberRole.owner)]
        assert proj.status == ProjectStatus.planning
        assert proj.created_by == users["owner"].id

    @pytest.mark.parametrize("name", ["", "   ", None, "x" * 101])
    def test_name_validation(self, conn, users, name):
        with pytest.raises(ValidationError):
            projects.create_project(conn, {"name": name}, users["owner"].id)

    def test_end_before_start_rejected(self, conn, users):
        with pytest.raises(ValidationError):
            projects.create_project(
                conn,
                {"name": "X", "start_date": "2024-05-01", "end_date": "2024-04-01"},
                users["owner"].id,
            )

    def test_failed_create_leaves_nothing_behind(self, conn, users):
        with pytest.raises(ValidationError):
            projects.create_project(conn, {"name": "X", "status": "bogus"}, users["owner"].id)
        assert conn.execute("SELECT COUNT(*) AS n FROM projects").fetchone()["n"] == 0
        assert conn.execute("SELECT COUNT(*) AS n FROM project_members").fetchone()["n"] == 0

    def test_owner_insert_failure_rolls_back_project(self, conn, users, monkeypatch):
        def fail_create(self, project_id, user_id, role):
            raise RuntimeError("membership write failed")

        monkeypatch.setattr(MembershipStore, "create", fail_create)

        with pytest.raises(RuntimeError):
            projects.create_project(conn, {"name": "X"}, users["owner"].id)
        assert conn.execute("SELECT COUNT(*) AS n FROM projects").fetchone()["n"] == 0
        assert conn.execute("SELECT COUNT(*) AS n FROM project_members").fetchone()["n"] == 0


# ---------------------------------------------------------
# Reads
# ---------------------------------------------------------
class TestReadProject:

    @pytest.mark.parametrize("who", ["owner", "admin", "member", "viewer", "root"])
    def test_members_and_global_admin_can_view(self, conn, project, users, who):
        proj = projects.get_project(conn, project.id, users[who].id)
        assert proj.name == "Apollo"
        assert len(proj.members) == 5

    def test_outsider_gets_not_found(self, conn, project, users):
        with pytest.raises(NotFound):
            projects.get_project(conn, project.id, users["outsider"].id)

    def test_missing_project(self, conn, users):
        with pytest.raises(NotFound):
            projects.get_project(conn, 9999, users["owner"].id)


class TestListProjects:

    def test_only_member_projects_listed(self, conn, project, users):
        other = projects.create_project(conn, {"name": "Other"}, users["outsider"].id)

        mine = projects.list_projects(conn, users["member"].id)
        assert [p.id for p in mine["projects"]] == [project.id]

        everything = projects.list_projects(conn, users["root"].id)
        assert {p.id for p in everything["projects"]} == {project.id, other.id}

    def test_pagination_and_status_filter(self, conn, users):
        owner_id = users["owner"].id
        for i in range(5):
            projects.create_project(conn, {"name": f"P{i}", "status": "in_progress" if i % 2 else "planning"}, owner_id)

        page = projects.list_projects(conn, owner_id, page=2, limit=2, sort="name", order="asc")
        assert [p.name for p in page["projects"]] == ["P2", "P3"]
        assert page["pagination"] == {"total": 5, "page": 2, "limit": 2, "total_pages": 3}

        active = projects.list_projects(conn, owner_id, status="in_progress")
        assert {p.name for p in active["projects"]} == {"P1", "P3"}

    def test_unknown_sort_rejected(self, conn, users):
        with pytest.raises(ValidationError):
            projects.list_projects(conn, users["owner"].id, sort="password_hash")


# ---------------------------------------------------------
# Update / delete
# ---------------------------------------------------------
class TestUpdateProject:

    @pytest.mark.parametrize("who", ["owner", "admin"])
    def test_owner_and_admin_can_edit(self, conn, project, users, who):
        updated = projects.update_project(conn, project.id, {"status": "on_hold"}, users[who].id)
        assert updated.status == ProjectStatus.on_hold
        assert updated.name == "Apollo"

    @pytest.mark.parametrize("who", ["member", "viewer"])
    def test_member_and_viewer_forbidden(self, conn, project, users, who):
        with pytest.raises(Forbidden):
            projects.update_project(conn, project.id, {"name": "Hijacked"}, users[who].id)

    def test_date_order_checked_against_stored_values(self, conn, project, users):
        projects.update_project(conn, project.id, {"start_date": "2024-06-01T00:00:00Z"}, users["owner"].id)
        with pytest.raises(ValidationError):
            projects.update_project(conn, project.id, {"end_date": "2024-05-01T00:00:00Z"}, users["owner"].id)


class TestDeleteProject:

    @pytest.mark.parametrize("who", ["admin", "member", "viewer"])
    def test_only_owner_deletes(self, conn, project, users, who):
        with pytest.raises(Forbidden):
            projects.delete_project(conn, project.id, users[who].id)

    def test_soft_delete_hides_project_and_cascades(self, conn, project, users):
        from projecthub.requirements import create_requirement
        from projecthub.tasks import create_task

        req = create_requirement(conn, project.id, {"title": "R"}, users["owner"].id)
        create_task(conn, {"title": "T", "project_id": project.id}, users["owner"].id)

        projects.delete_project(conn, project.id, users["owner"].id)

        with pytest.raises(NotFound):
            projects.get_project(conn, project.id, users["owner"].id)
        row = conn.execute("SELECT deleted_at FROM projects WHERE id = ?", (project.id,)).fetchone()
        assert row["deleted_at"] is not None
        req_row = conn.execute("SELECT deleted_at FROM requirements WHERE id = ?", (req.id,)).fetchone()
        assert req_row["deleted_at"] is not None
        assert conn.execute("SELECT COUNT(*) AS n FROM tasks").fetchone()["n"] == 0
        assert owner_count(conn, project.id) == 1


# ---------------------------------------------------------
# Membership
# ---------------------------------------------------------
class TestAddMember:

    def test_owner_adds_member(self, conn, project, users, make_user):
        newcomer = make_user("newcomer")
        m = projects.add_member(conn, project.id, newcomer.id, "member", users["owner"].id)
        assert m.role == MemberRole.member
        assert m.username == "newcomer"

    def test_member_cannot_add(self, conn, project, users, make_user):
        u3 = make_user("user3")
        with pytest.raises(Forbidden):
            projects.add_member(conn, project.id, u3.id, "member", users["member"].id)

    def test_admin_cannot_add(self, conn, project, users, make_user):
        u3 = make_user("user3")
        with pytest.raises(Forbidden):
            projects.add_member(conn, project.id, u3.id, "viewer", users["admin"].id)

    def test_scenario_owner_adds_then_member_tries(self, conn, users, make_user):
        u1, u2, u3 = users["owner"], make_user("user2"), make_user("user3")
        proj = projects.create_project(conn, {"name": "X"}, u1.id)
        projects.add_member(conn, proj.id, u2.id, "member", u1.id)

        with pytest.raises(Forbidden):
            projects.add_member(conn, proj.id, u3.id, "member", u2.id)

    def test_duplicate_add(self, conn, project, users, make_user):
        newcomer = make_user("newcomer")
        projects.add_member(conn, project.id, newcomer.id, "member", users["owner"].id)
        with pytest.raises(DuplicateMembership):
            projects.add_member(conn, project.id, newcomer.id, "member", users["owner"].id)

    def test_unknown_user(self, conn, project, users):
        with pytest.raises(NotFound):
            projects.add_member(conn, project.id, 9999, "member", users["owner"].id)

    def test_owner_role_not_assignable(self, conn, project, users, make_user):
        newcomer = make_user("newcomer")
        with pytest.raises(InvariantViolation):
            projects.add_member(conn, project.id, newcomer.id, "owner", users["owner"].id)
        assert owner_count(conn, project.id) == 1

    def test_outsider_gets_not_found(self, conn, project, users, make_user):
        newcomer = make_user("newcomer")
        with pytest.raises(NotFound):
            projects.add_member(conn, project.id, newcomer.id, "member", users["outsider"].id)


class TestRemoveMember:

    @pytest.mark.parametrize("who", ["owner", "admin", "member", "viewer", "root"])
    def test_owner_never_removed(self, conn, project, users, who):
        with pytest.raises(InvariantViolation):
            projects.remove_member(conn, project.id, users["owner"].id, users[who].id)
        assert owner_count(conn, project.id) == 1

    def test_self_removal(self, conn, project, users):
        projects.remove_member(conn, project.id, users["viewer"].id, users["viewer"].id)
        assert MembershipStore(conn).get(project.id, users["viewer"].id) is None

    def test_admin_cannot_remove_others(self, conn, project, users):
        with pytest.raises(Forbidden):
            projects.remove_member(conn, project.id, users["member"].id, users["admin"].id)

    def test_owner_removes_admin(self, conn, project, users):
        projects.remove_member(conn, project.id, users["admin"].id, users["owner"].id)
        assert MembershipStore(conn).get(project.id, users["admin"].id) is None

    def test_missing_membership(self, conn, project, users):
        with pytest.raises(NotFound):
            projects.remove_member(conn, project.id, users["outsider"].id, users["owner"].id)

    @pytest.mark.parametrize("target", ["member", "owner", "outsider"])
    def test_outsider_cannot_tell_who_is_a_member(self, conn, project, users, target):
        with pytest.raises(NotFound):
            projects.remove_member(conn, project.id, users[target].id, users["outsider"].id)
        assert MembershipStore(conn).get(project.id, users["member"].id) is not None

    def test_global_admin_removes_member(self, conn, project, users):
        projects.remove_member(conn, project.id, users["member"].id, users["root"].id)
        assert MembershipStore(conn).get(project.id, users["member"].id) is None


class TestUpdateMemberRole:

    def test_admin_cannot_change_other_admin(self, conn, project, users):
        with pytest.raises(Forbidden):
            projects.update_member_role(conn, project.id, users["admin2"].id, "member", users["admin"].id)
        assert MembershipStore(conn).get(project.id, users["admin2"].id).role == MemberRole.admin

    def test_owner_changes_admin(self, conn, project, users):
        m = projects.update_member_role(conn, project.id, users["admin2"].id, "member", users["owner"].id)
        assert m.role == MemberRole.member

    def test_admin_promotes_viewer(self, conn, project, users):
        m = projects.update_member_role(conn, project.id, users["viewer"].id, "member", users["admin"].id)
        assert m.role == MemberRole.member

    @pytest.mark.parametrize("who", ["member", "viewer"])
    def test_member_and_viewer_forbidden(self, conn, project, users, who):
        with pytest.raises(Forbidden):
            projects.update_member_role(conn, project.id, users["viewer"].id, "member", users[who].id)

    @pytest.mark.parametrize("who", ["owner", "root"])
    def test_owner_role_never_changes(self, conn, project, users, who):
        with pytest.raises(InvariantViolation):
            projects.update_member_role(conn, project.id, users["owner"].id, "admin", users[who].id)
        with pytest.raises(InvariantViolation):
            projects.update_member_role(conn, project.id, users["member"].id, "owner", users[who].id)
        assert owner_count(conn, project.id) == 1
        assert MembershipStore(conn).get(project.id, users["owner"].id).role == MemberRole.owner

    def test_same_role_twice(self, conn, project, users):
        for _ in range(2):
            projects.update_member_role(conn, project.id, users["member"].id, "viewer", users["owner"].id)
        members = projects.list_members(conn, project.id, users["owner"].id)
        assert len(members) == 5
        assert MembershipStore(conn).get(project.id, users["member"].id).role == MemberRole.viewer

    def test_invalid_role(self, conn, project, users):
        with pytest.raises(ValidationError):
            projects.update_member_role(conn, project.id, users["member"].id, "superuser", users["owner"].id)
