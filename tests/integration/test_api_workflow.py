"""Integration tests for the monthly workflow endpoints."""

import threading
from datetime import date

import pytest
from fastapi.testclient import TestClient

from closeflow.api.main import create_app
from closeflow.core.config import Settings
from closeflow.core.errors import ExportCancelled


BATCH_ID = "batch-2024-01-001"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
WORKFLOW = f"/v1/monthly-workflow/{BATCH_ID}"


@pytest.fixture
def linear_client(linear_facade, settings):
    linear_facade.register_batch(BATCH_ID, date(2024, 1, 31))
    return TestClient(create_app(facade=linear_facade, settings=settings))


@pytest.fixture
def preparer(as_user):
    return as_user("ops.lead", "preparer")


@pytest.fixture
def viewer(as_user):
    return as_user("reader", "viewer")


def complete(client, headers, step_id, confirmed=True):
    return client.post(f"{WORKFLOW}/steps/{step_id}/complete", json={"confirmed": confirmed}, headers=headers)


class TestSteps:
    """Test reading the workflow."""

    def test_list_steps(self, client, viewer, batch):
        response = client.get(WORKFLOW, headers=viewer)
        assert response.status_code == 200
        steps = response.json()
        assert [s["id"] for s in steps][:2] == ["data-load", "validation"]
        assert len(steps) == 8
        assert steps[0]["status"] == "not-started"
        assert steps[0]["dueDate"] == "2024-02-02"
        assert steps[1]["blockedBy"] == ["Data Load"]

    def test_step_details(self, client, viewer, batch):
        response = client.get(f"{WORKFLOW}/steps/calculations", headers=viewer)
        assert response.status_code == 200
        body = response.json()
        assert [p["id"] for p in body["prerequisites"]] == ["data-confirmation", "market-data"]
        assert body["dependents"] == ["report-generation"]

    def test_unknown_step(self, client, viewer, batch):
        response = client.get(f"{WORKFLOW}/steps/nope", headers=viewer)
        assert response.status_code == 404
        assert response.json()["error"] == "step_not_found"

    def test_unknown_batch(self, client, viewer):
        assert client.get("/v1/monthly-workflow/missing", headers=viewer).status_code == 404

    def test_read_requires_identity(self, client, batch):
        assert client.get(WORKFLOW).status_code == 401

    def test_etag_changes_after_completion(self, linear_client, viewer, preparer):
        first = linear_client.get(WORKFLOW, headers=viewer)
        etag = first.headers["ETag"]
        assert linear_client.get(WORKFLOW, headers={**viewer, "If-None-Match": etag}).status_code == 304

        complete(linear_client, preparer, "load")
        fresh = linear_client.get(WORKFLOW, headers={**viewer, "If-None-Match": etag})
        assert fresh.status_code == 200
        assert fresh.headers["ETag"] != etag


class TestCompletion:
    """Test completing steps."""

    def test_completion_unblocks_next_step(self, linear_client, preparer, viewer):
        response = complete(linear_client, preparer, "load")
        assert response.status_code == 200
        body = response.json()
        assert body["changed"] is True
        assert body["unblocked"] == ["validate"]
        assert body["step"]["completedBy"] == "ops.lead"

        statuses = {s["id"]: s["status"] for s in linear_client.get(WORKFLOW, headers=viewer).json()}
        assert statuses == {"load": "complete", "validate": "not-started", "report": "blocked"}

    def test_blocked_step_is_409(self, linear_client, preparer):
        response = complete(linear_client, preparer, "report")
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "prerequisite_not_met"
        assert body["missing"] == ["Validate"]

    def test_completion_must_be_confirmed(self, linear_client, preparer):
        response = complete(linear_client, preparer, "load", confirmed=False)
        assert response.status_code == 422
        assert response.json()["field"] == "confirmed"

    def test_viewer_cannot_complete(self, linear_client, viewer):
        assert complete(linear_client, viewer, "load").status_code == 403

    def test_repeat_completion_changes_nothing(self, linear_client, preparer):
        first = complete(linear_client, preparer, "load").json()
        again = complete(linear_client, preparer, "load").json()
        assert again["changed"] is False
        assert again["revision"] == first["revision"]

    def test_pending_tasks_block_completion(self, client, preparer, batch):
        response = complete(client, preparer, "data-load")
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "tasks_incomplete"
        assert len(body["pending"]) == 3

        for n in (1, 2, 3):
            toggled = client.post(f"{WORKFLOW}/steps/data-load/tasks/data-load-task-{n}/toggle", headers=preparer)
            assert toggled.status_code == 200

        response = complete(client, preparer, "data-load")
        assert response.status_code == 200
        assert response.json()["unblocked"] == ["validation", "market-data"]


class TestStepEdits:
    """Test owner, due date, task and comment edits."""

    def test_assign_owner(self, client, preparer, batch):
        response = client.post(f"{WORKFLOW}/steps/validation/assign", json={"userId": "anna"}, headers=preparer)
        assert response.status_code == 200
        assert response.json()["step"]["owner"] == "anna"

    def test_due_date_warning(self, client, preparer, batch):
        response = client.post(
            f"{WORKFLOW}/steps/validation/due-date",
            json={"dueDate": "2024-02-01"},
            headers=preparer,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["step"]["dueDate"] == "2024-02-01"
        assert len(body["warnings"]) == 1

    def test_malformed_due_date(self, client, preparer, batch):
        response = client.post(
            f"{WORKFLOW}/steps/validation/due-date",
            json={"dueDate": "soon"},
            headers=preparer,
        )
        assert response.status_code == 422

    def test_add_and_toggle_task(self, client, preparer, batch):
        response = client.post(
            f"{WORKFLOW}/steps/validation/tasks",
            json={"name": "Check late trades", "link": "/trades"},
            headers=preparer,
        )
        assert response.status_code == 201
        task_id = response.json()["task"]["id"]
        assert len(response.json()["step"]["tasks"]) == 3

        toggled = client.post(f"{WORKFLOW}/steps/validation/tasks/{task_id}/toggle", headers=preparer)
        assert toggled.json()["task"]["completed"] is True

    def test_unknown_task(self, client, preparer, batch):
        response = client.post(f"{WORKFLOW}/steps/validation/tasks/task-x/toggle", headers=preparer)
        assert response.status_code == 404
        assert response.json()["error"] == "task_not_found"

    def test_step_comments(self, client, preparer, viewer, batch):
        response = client.post(
            f"{WORKFLOW}/steps/validation/comments",
            json={"text": "Two breaks left"},
            headers=preparer,
        )
        assert response.status_code == 201
        assert response.json()["username"] == "ops.lead"

        comments = client.get(f"{WORKFLOW}/steps/validation/comments", headers=viewer).json()
        assert [c["text"] for c in comments] == ["Two breaks left"]

        step = client.get(f"{WORKFLOW}/steps/validation", headers=viewer).json()
        assert step["commentCount"] == 1

    def test_blank_step_comment(self, client, preparer, batch):
        response = client.post(f"{WORKFLOW}/steps/validation/comments", json={"text": ""}, headers=preparer)
        assert response.status_code == 422


class TestRollups:
    """Test progress, critical path and export."""

    def test_progress(self, linear_client, preparer, viewer):
        complete(linear_client, preparer, "load")
        body = linear_client.get(f"{WORKFLOW}/progress", headers=viewer).json()
        assert body["percentage"] == 33
        assert body["completedSteps"] == 1
        assert body["status"] == "in-progress"

    def test_critical_path(self, client, viewer, batch):
        body = client.get(f"{WORKFLOW}/critical-path", headers=viewer).json()
        assert body["stepIds"][0] == "data-load"
        assert body["stepIds"][-1] == "publication"
        assert "calculations" in body["stepIds"]

    def test_export(self, client, preparer, batch):
        response = client.get(f"{WORKFLOW}/export", headers=preparer)
        assert response.status_code == 200
        assert response.headers["content-type"] == XLSX
        assert "workflow-batch-2024-01-001.xlsx" in response.headers["content-disposition"]

    def test_export_requires_permission(self, client, viewer, batch):
        assert client.get(f"{WORKFLOW}/export", headers=viewer).status_code == 403

    def test_export_timeout_is_503(self, facade, batch, preparer, tmp_path, monkeypatch):
        cancelled = threading.Event()

        def slow_export(batch_id, *, cancel_event=None, permissions=None):
            cancel_event.wait(5)
            cancelled.set()
            raise ExportCancelled()

        monkeypatch.setattr(facade, "export_workflow", slow_export)
        settings = Settings(log_to_file=False, log_dir=str(tmp_path), export_timeout=0.05)
        client = TestClient(create_app(facade=facade, settings=settings))

        response = client.get(f"{WORKFLOW}/export", headers=preparer)
        assert response.status_code == 503
        assert response.json()["error"] == "export_cancelled"
        assert cancelled.wait(5)
