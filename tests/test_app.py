"""API tests for the sequence engine endpoints."""

import pytest
from fastapi.testclient import TestClient

from app import app


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


class TestHealth:
    def test_root(self, client):
        resp = client.get("/")
        assert resp.status_code == 200

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.json() == {"status": "healthy"}

    def test_step_types(self, client):
        data = client.get("/api/sequence/step-types").json()
        assert "email" in data["actions"]
        assert len(data["conditions"]) == 9
        assert data["aliases"]["jobTitle"] == "position"


class TestTemplateEndpoints:
    def test_list(self, client):
        data = client.get("/api/sequence/templates").json()
        assert [t["id"] for t in data] == ["email_follow_up", "linkedin_connect", "multichannel_reply_check"]
        assert data[0]["stepCount"] == 4

    def test_list_by_channel(self, client):
        data = client.get("/api/sequence/templates", params={"channel": "multichannel"}).json()
        assert [t["id"] for t in data] == ["multichannel_reply_check"]

    def test_unknown_channel(self, client):
        resp = client.get("/api/sequence/templates", params={"channel": "fax"})
        assert resp.status_code == 422

    def test_get(self, client):
        data = client.get("/api/sequence/templates/email_follow_up").json()
        assert data["relaidOut"] is True
        assert data["adjacency"]["opened"]["yesChild"] == "call"

    def test_missing(self, client):
        resp = client.get("/api/sequence/templates/nope")
        assert resp.status_code == 404


class TestSequenceEndpoints:
    def test_load(self, client, scenario_steps):
        resp = client.post("/api/sequence/load", json={"steps": scenario_steps})

        assert resp.status_code == 200
        data = resp.json()
        assert data["warnings"] == []
        assert data["relaidOut"] is True
        assert data["adjacency"]["opened"] == {"mainChildren": [], "yesChild": "call", "noChild": "follow"}
        assert len(data["reactflow"]["nodes"]) == 4
        assert len(data["reactflow"]["edges"]) == 3

        steps = {step["id"]: step for step in data["steps"]}
        assert steps["call"]["content"]["variables"] == ["name"]
        assert (steps["follow"]["x"], steps["follow"]["y"]) == (110, 500)

    def test_load_reports_warnings(self, client):
        resp = client.post("/api/sequence/load", json={"steps": [
            {"id": "a", "stepType": "email", "parentId": "ghost"},
        ]})
        warnings = resp.json()["warnings"]
        assert warnings[0]["code"] == "unknown_parent"
        assert warnings[0]["stepId"] == "a"

    def test_layout_ignores_stored_positions(self, client, scenario_steps):
        for step in scenario_steps:
            step["x"] = 1
            step["y"] = 1

        data = client.post("/api/sequence/layout", json={"steps": scenario_steps}).json()

        steps = {step["id"]: step for step in data["steps"]}
        assert (steps["call"]["x"], steps["call"]["y"]) == (550, 350)

    def test_validate_clean(self, client, scenario_steps):
        data = client.post("/api/sequence/validate", json={"steps": scenario_steps}).json()
        assert data == {"valid": True, "problems": [], "warnings": []}

    def test_validate_open_branch(self, client, scenario_steps):
        steps = [step for step in scenario_steps if step["id"] != "follow"]
        data = client.post("/api/sequence/validate", json={"steps": steps}).json()

        assert data["valid"] is False
        assert data["problems"] == ["Condition 'opened' has nothing on its no branch"]

    def test_bad_request_body(self, client):
        resp = client.post("/api/sequence/load", json={"steps": "nope"})
        assert resp.status_code == 422


class TestVariableEndpoints:
    def test_extract(self, client):
        resp = client.post("/api/variables/extract", json={"text": "Hi {{firstName}}, {{foo}} at {{company}}"})
        assert resp.json() == {"variables": ["first_name", "company"]}


class TestCampaignEndpoints:
    def test_prepare(self, client, scenario_steps):
        resp = client.post("/api/campaigns/prepare", json={
            "name": "Q4 outreach",
            "prospects": [{"name": "Ada Lovelace", "email": "ada@analytical.io"}],
            "sequence": scenario_steps,
        })

        assert resp.status_code == 200
        data = resp.json()
        assert data["warnings"] == []
        assert data["payload"]["name"] == "Q4 outreach"
        assert len(data["payload"]["sequence"]) == 4

    def test_prepare_rejects_bad_email(self, client):
        resp = client.post("/api/campaigns/prepare", json={
            "name": "Q4 outreach",
            "prospects": [{"name": "Ada", "email": "nope"}],
        })
        assert resp.status_code == 422
