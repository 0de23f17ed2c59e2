"""
PM Board
Tests: project API (bootstrap, views, single update, bulk replace, custom order).

Uses shared fixtures from conftest.py: client, session (autouse), seeded.
"""

import json

import pytest

from pmboard.services import project_service
from pmboard.services.user_service import parse_roles


def _get_projects(client, email, mode, **params):
    res = client.get("/api/projects", query_string={"email": email, "mode": mode, **params})
    assert res.status_code == 200, res.get_json()
    return res.get_json()


def _update(client, email, mode, **payload):
    return client.post("/api/update", json={"email": email, "mode": mode, "payload": payload})


def _raw(client):
    res = client.get("/api/raw-data")
    assert res.status_code == 200
    return res.get_json()


def _unread(client, email, name):
    res = client.get("/api/notifications", query_string={"email": email, "name": name})
    assert res.status_code == 200
    return res.get_json()


def _by_row(projects, row_index):
    return next(p for p in projects if p["rowIndex"] == row_index)


# ═════════════════════════════════════════════════════════════════════════
#  Bootstrap
# ═════════════════════════════════════════════════════════════════════════


class TestBootstrap:
    def test_roles_and_static_config(self, client, seeded):
        res = client.get("/api/bootstrap?email=PAT@example.com")
        assert res.status_code == 200
        data = res.get_json()
        assert data["name"] == "Pat"
        assert data["isPM"] is True
        assert data["isDesigner"] is False
        assert data["priorityOptions"] == [str(n) for n in range(1, 11)]
        assert data["phaseColors"] == {"In Progress": "#3b82f6"}

    def test_multiple_roles(self, client, seeded):
        data = client.get("/api/bootstrap?email=olive@example.com").get_json()
        assert data["roles"] == ["OPERATIONAL", "PM"]
        assert data["isOps"] and data["isPM"]

    def test_unknown_email_is_404(self, client, seeded):
        res = client.get("/api/bootstrap?email=ghost@example.com")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_missing_email_is_400(self, client, seeded):
        assert client.get("/api/bootstrap").status_code == 400

    def test_parse_roles(self):
        assert parse_roles(" pm, designer ,") == ["PM", "DESIGNER"]
        assert parse_roles(None) == []


# ═════════════════════════════════════════════════════════════════════════
#  Views
# ═════════════════════════════════════════════════════════════════════════


class TestProjectViews:
    def test_pm_view_defaults_to_own_projects(self, client, seeded):
        data = _get_projects(client, "pat@example.com", "pm")
        assert [p["rowIndex"] for p in data["projects"]] == [1]
        assert data["pmList"] == ["__ALL__", "Olive", "Pat", "Unassigned"]
        assert data["statusList"] == ["Abandoned", "In Progress"]
        assert data["designerCounts"] == {"alice": 1, "bob": 2}
        assert data["totalUnassigned"] == 0
        card = data["projects"][0]
        assert card["team"][0]["name"] == "Alice"
        assert card["missing"] == []

    def test_pm_view_all_and_unassigned(self, client, seeded):
        everything = _get_projects(client, "pat@example.com", "pm", pmName="__ALL__")
        assert len(everything["projects"]) == 3
        orphans = _get_projects(client, "pat@example.com", "pm", pmName="Unassigned")
        assert [p["rowIndex"] for p in orphans["projects"]] == [3]
        assert orphans["projects"][0]["missing"] == ["pm"]

    def test_unassigned_active_project_is_counted(self, client, seeded):
        projects = seeded.get_all("projects")
        projects[2]["status"] = "In Progress"
        seeded.set("projects", projects)
        seeded.write()
        data = _get_projects(client, "pat@example.com", "pm")
        assert data["totalUnassigned"] == 1

    def test_designer_view(self, client, seeded):
        data = _get_projects(client, "bob@example.com", "mine")
        assert [p["rowIndex"] for p in data["projects"]] == [1, 2]
        assert [p["my"]["priority"] for p in data["projects"]] == ["2", "1"]

    def test_ops_view(self, client, seeded):
        data = _get_projects(client, "olive@example.com", "ops")
        assert len(data["projects"]) == 3
        assert "operational" in data["projects"][0]

    def test_bad_mode_is_400(self, client, seeded):
        res = client.get("/api/projects?email=pat@example.com&mode=admin")
        assert res.status_code == 400

    def test_unknown_user_is_404(self, client, seeded):
        res = client.get("/api/projects?email=ghost@example.com&mode=pm")
        assert res.status_code == 404

    def test_missing_row_indexes_are_repaired(self, seeded):
        projects = seeded.get_all("projects")
        projects.append({"projectName": "Fresh", "pm": "Pat", "status": "In Progress"})
        seeded.set("projects", projects)
        seeded.set("config", {"lastRowIndex": 10})
        seeded.write()

        data = project_service.list_projects("pat@example.com", "pm", store=seeded)
        assert _by_row(data["projects"], 11)["projectName"] == "Fresh"

    def test_unknown_mode_raises_in_service(self, seeded):
        from pmboard.core.exceptions import ValidationError

        with pytest.raises(ValidationError):
            project_service.list_projects("pat@example.com", "admin", store=seeded)


class TestEnsureRowIndexes:
    def test_continues_from_high_water_mark(self):
        projects = [{"rowIndex": 2}, {"rowIndex": ""}, {}]
        fixed, high = project_service.ensure_row_indexes(projects, last_assigned=5)
        assert (fixed, high) == (2, 7)
        assert [p["rowIndex"] for p in projects] == [2, 6, 7]

    def test_highest_present_index_wins(self):
        projects = [{"rowIndex": 40}, {}]
        assert project_service.ensure_row_indexes(projects, 3) == (1, 41)


# ═════════════════════════════════════════════════════════════════════════
#  Single update
# ═════════════════════════════════════════════════════════════════════════


class TestUpdate:
    def test_pm_replaces_designer(self, client, seeded):
        res = _update(client, "pat@example.com", "pm", rowIndex=1, designer1="Carol")
        assert res.status_code == 200
        body = res.get_json()
        assert body["ok"] is True
        assert body["notifsGenerated"] == 4

        project = _by_row(_raw(client)["projects"], 1)
        assert project["designer1"] == "Carol"
        assert project["priority1"] == "-"
        assert project["notes1"] == ""
        assert project["lastModified"]["by"] == "Pat"

        titles = [n["title"] for n in _unread(client, "bob@example.com", "Bob")]
        assert sorted(titles) == ["Shared Project Update", "Team Update"]
        assert [n["title"] for n in _unread(client, "carol@example.com", "Carol")] == ["New Assignment"]

    def test_designer_priority_change_tells_pm(self, client, seeded):
        res = _update(client, "bob@example.com", "mine", rowIndex=1, priority="1")
        assert res.status_code == 200
        assert res.get_json()["notifsGenerated"] == 2

        assert _by_row(_raw(client)["projects"], 1)["priority2"] == "1"
        assert [n["title"] for n in _unread(client, "pat@example.com", "Pat")] == ["Designer Priority Change"]
        assert [n["title"] for n in _unread(client, "alice@example.com", "Alice")] == ["Shared Project Update"]
        assert _unread(client, "bob@example.com", "Bob") == []

    def test_designer_notes_only_is_silent(self, client, seeded):
        res = _update(client, "alice@example.com", "mine", rowIndex=1, notes="drafting")
        assert res.get_json()["notifsGenerated"] == 0
        assert _by_row(_raw(client)["projects"], 1)["notes1"] == "drafting"

    def test_designer_not_on_card_is_422(self, client, seeded):
        res = _update(client, "carol@example.com", "mine", rowIndex=1, priority="1")
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"

    def test_unknown_row_is_404_and_nothing_changes(self, client, seeded):
        before = _raw(client)
        res = _update(client, "pat@example.com", "pm", rowIndex=99, pmNotes="x")
        assert res.status_code == 404
        assert _raw(client) == before

    def test_missing_row_index_is_400(self, client, seeded):
        assert _update(client, "pat@example.com", "pm", pmNotes="x").status_code == 400

    def test_missing_payload_is_400(self, client, seeded):
        res = client.post("/api/update", json={"email": "pat@example.com", "mode": "pm"})
        assert res.status_code == 400

    def test_skip_notifications(self, client, seeded):
        res = _update(client, "pat@example.com", "pm", rowIndex=1, pmNotes="quiet", skipNotifications=True)
        assert res.get_json()["notifsGenerated"] == 0
        assert _raw(client)["notifications"] == []
        assert _by_row(_raw(client)["projects"], 1)["pmNotes"] == "quiet"

    def test_real_actor_is_credited_and_suppressed(self, client, seeded):
        res = _update(
            client, "pat@example.com", "pm",
            rowIndex=1, pmNotes="on behalf", realActorEmail="alice@example.com",
        )
        assert res.get_json()["notifsGenerated"] == 1
        assert _by_row(_raw(client)["projects"], 1)["lastModified"]["by"] == "Alice"
        assert [n["targetName"] for n in _raw(client)["notifications"]] == ["bob"]

    def test_completion_celebrates_and_supersedes(self, client, seeded):
        res = _update(
            client, "pat@example.com", "pm",
            rowIndex=1, status="Completed - Sent to Client", pmNotes="Done!",
        )
        assert res.get_json()["notifsGenerated"] == 2

        for email, name in (("alice@example.com", "Alice"), ("bob@example.com", "Bob")):
            unread = _unread(client, email, name)
            assert len(unread) == 1
            assert unread[0]["type"] == "COMPLETED_MODAL"
            assert unread[0]["team"] == ["alice", "bob", "pat"]
        assert _unread(client, "pat@example.com", "Pat") == []

    def test_ops_reassigns_pm(self, client, seeded):
        res = _update(client, "olive@example.com", "ops", rowIndex=1, pmName="Olive", operational="Olive")
        assert res.get_json()["notifsGenerated"] == 2
        project = _by_row(_raw(client)["projects"], 1)
        assert project["pm"] == "Olive"
        assert project["operational"] == "Olive"


# ═════════════════════════════════════════════════════════════════════════
#  Bulk replace
# ═════════════════════════════════════════════════════════════════════════


class TestRawData:
    def test_snapshot_has_every_collection(self, client, seeded):
        data = _raw(client)
        assert set(data) == {"projects", "users", "colors", "config", "notifications"}

    def test_invalid_structure_is_400(self, client, seeded):
        res = client.post("/api/raw-data", json={"users": []})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invalid DB structure"

    def test_replace_notifies_rebalances_and_indexes(self, client, seeded):
        data = _raw(client)
        projects = data["projects"]
        projects[0]["designer1"] = "Dave"
        projects[0]["lastModified"] = {"by": "Pat"}
        projects.append({"projectName": "Fresh", "pm": "Pat", "status": "In Progress",
                         "designer1": "Alice", "priority1": "7"})

        res = client.post("/api/raw-data", json=data)
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["count"] == 4
        assert body["notifsGenerated"] == 3

        saved = _raw(client)
        assert _by_row(saved["projects"], 3)["priority1"] == ""
        fresh = _by_row(saved["projects"], 4)
        assert fresh["projectName"] == "Fresh"
        assert fresh["priority1"] == "1"
        assert saved["config"]["lastRowIndex"] == 4
        assert sorted(n["targetName"] for n in saved["notifications"]) == ["alice", "bob", "dave"]

    def test_editor_is_not_notified_of_own_bulk_change(self, client, seeded):
        data = _raw(client)
        data["projects"][0]["pmNotes"] = "bulk note"
        data["projects"][0]["lastModified"] = {"by": "Alice"}

        body = client.post("/api/raw-data", json=data).get_json()
        assert body["notifsGenerated"] == 1
        assert [n["targetName"] for n in _raw(client)["notifications"]] == ["bob"]

    def test_notification_log_is_never_replaced(self, client, seeded):
        _update(client, "pat@example.com", "pm", rowIndex=1, pmNotes="first")
        data = _raw(client)
        assert len(data["notifications"]) == 2
        data["notifications"] = []

        client.post("/api/raw-data", json=data)
        assert len(_raw(client)["notifications"]) == 2

    def test_row_indexes_are_not_reused(self, client, seeded):
        data = _raw(client)
        data["projects"] = data["projects"][:1]
        client.post("/api/raw-data", json=data)

        data = _raw(client)
        data["projects"].append({"projectName": "Later", "pm": "Pat"})
        data["config"]["lastRowIndex"] = 0
        client.post("/api/raw-data", json=data)

        assert _by_row(_raw(client)["projects"], 4)["projectName"] == "Later"

    def test_notifications_see_priorities_before_rebalance(self, client, seeded):
        data = _raw(client)
        _by_row(data["projects"], 1)["priority1"] = "9"

        body = client.post("/api/raw-data", json=data).get_json()
        assert body["notifsGenerated"] == 3

        saved = _raw(client)
        assert _by_row(saved["projects"], 1)["priority1"] == "1"
        by_target = {n["targetName"]: n for n in saved["notifications"]}
        assert by_target["alice"]["title"] == "Priority Changed by PM"
        assert by_target["bob"]["title"] == "Shared Project Update"
        assert by_target["pat"]["title"] == "Designer Priority Change"
        assert by_target["pat"]["targetRole"] == "PM"
        assert ">9</span>" in by_target["alice"]["body"]

    def test_celebration_supersedes_across_the_batch(self, client, seeded):
        data = _raw(client)
        first = _by_row(data["projects"], 1)
        first["status"] = "Completed - Sent To Client"
        first["pmNotes"] = "Wrapped up"
        first["lastModified"] = {"by": "Pat"}
        _by_row(data["projects"], 2)["pmNotes"] = "Kickoff Monday"

        body = client.post("/api/raw-data", json=data).get_json()
        assert body["notifsGenerated"] == 3

        log = _raw(client)["notifications"]
        done = [n for n in log if n["projectNumber"] == "P-001"]
        assert sorted(n["targetName"] for n in done) == ["alice", "bob"]
        assert all(n["type"] == "COMPLETED_MODAL" for n in done)
        assert done[0]["team"] == ["alice", "bob", "pat"]

        other = [n for n in log if n["projectNumber"] == "P-002"]
        assert [(n["targetName"], n["title"]) for n in other] == [("bob", "PM Note Update")]

    def test_unknown_collections_are_ignored(self, client, seeded):
        data = _raw(client)
        data["scratch"] = {"x": 1}
        assert client.post("/api/raw-data", json=data).status_code == 200
        assert "scratch" not in _raw(client)


# ═════════════════════════════════════════════════════════════════════════
#  Custom order
# ═════════════════════════════════════════════════════════════════════════


class TestCustomOrder:
    def test_saved_order_is_returned_with_pm_view(self, client, seeded):
        res = client.post("/api/custom-order", json={
            "email": "pat@example.com", "pmName": "__ALL__", "orderedRowIndexes": [2, 1, 3],
        })
        assert res.status_code == 200
        assert res.get_json() == {"success": True, "message": "Custom order saved"}

        data = _get_projects(client, "pat@example.com", "pm", pmName="__ALL__")
        assert data["customSortOrder"] == [2, 1, 3]
        assert _get_projects(client, "pat@example.com", "pm")["customSortOrder"] == []

    def test_non_list_is_400(self, client, seeded):
        res = client.post("/api/custom-order", json={
            "email": "pat@example.com", "pmName": "Pat", "orderedRowIndexes": "2,1",
        })
        assert res.status_code == 400

    def test_unknown_user_is_404(self, client, seeded):
        res = client.post("/api/custom-order", json={
            "email": "ghost@example.com", "pmName": "Pat", "orderedRowIndexes": [],
        })
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════
#  Request guards and CLI
# ═════════════════════════════════════════════════════════════════════════


class TestGuards:
    def test_non_json_body_is_415(self, client, seeded):
        res = client.post("/api/update", data="rowIndex=1", content_type="text/plain")
        assert res.status_code == 415

    def test_failed_write_is_500_and_rolled_back(self, client, seeded, monkeypatch):
        from sqlalchemy.exc import SQLAlchemyError

        from pmboard.store import SQLDocumentStore

        def _boom(self):
            raise SQLAlchemyError("locked")

        before = _raw(client)
        monkeypatch.setattr(SQLDocumentStore, "write", _boom)
        res = _update(client, "pat@example.com", "pm", rowIndex=1, pmNotes="lost")
        assert res.status_code == 500
        assert res.get_json()["code"] == "ERR_STORE_WRITE"

        monkeypatch.undo()
        assert _raw(client) == before

    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/nope")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/nope"


class TestSeedCommand:
    def test_seed_db(self, app, tmp_path):
        path = tmp_path / "db.json"
        path.write_text(json.dumps({
            "users": [{"email": "pat@example.com", "name": "Pat", "role": "PM"}],
            "projects": [{"projectName": "A"}, {"projectName": "B"}],
            "notifications": [{"id": "ignored"}],
        }))

        result = app.test_cli_runner().invoke(args=["seed-db", str(path)])
        assert result.exit_code == 0, result.output
        assert "projects: 2" in result.output

        client = app.test_client()
        data = client.get("/api/raw-data").get_json()
        assert [p["rowIndex"] for p in data["projects"]] == [1, 2]
        assert data["notifications"] == []
