"""
HTTP tests for the REST API.

Test Coverage:
- Acting-user header requirement
- Response envelopes and pagination
- Error rendering for missing entities, bad input and forbidden changes
- Hint endpoints
"""

from conftest import CHAMPION, CREATOR

HEADERS = {"X-User-Id": CREATOR, "X-User-Role": "Champion"}


class TestSystemEndpoints:
    """Test suite for unauthenticated system endpoints."""

    async def test_root(self, client):
        """Test the application info endpoint."""
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["name"] == "Onboardflow"

    async def test_health_without_database(self, client):
        """Test that health reports 503 when MongoDB is not connected."""
        response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"


class TestAuthentication:
    """Test suite for the acting-user header."""

    async def test_missing_user_header(self, client):
        """Test that requests without X-User-Id are rejected."""
        response = await client.get("/api/cases")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["error_code"] == "4000"


class TestCaseEndpoints:
    """Test suite for case endpoints."""

    async def test_create_case(self, client):
        """Test that creation returns 201 with the camelCase case in the envelope."""
        response = await client.post(
            "/api/cases",
            json={"clientId": "client-1", "assignedChampion": CHAMPION, "priority": "High"},
            headers=HEADERS
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["caseId"].startswith("OB-")
        assert body["data"]["priority"] == "High"
        assert body["data"]["createdBy"] == CREATOR

    async def test_create_case_missing_champion(self, client):
        """Test that body validation errors are 422 with field errors."""
        response = await client.post("/api/cases", json={"clientId": "client-1"}, headers=HEADERS)

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["error_code"] == "1001"
        assert any("assignedChampion" in e["field"] for e in error["details"]["field_errors"])

    async def test_unknown_case(self, client):
        """Test that a missing case renders as 404 in the error envelope."""
        response = await client.get("/api/cases/does-not-exist", headers=HEADERS)

        assert response.status_code == 404
        assert response.json()["success"] is False

    async def test_list_pagination(self, client, case_service):
        """Test the pagination block of list responses."""
        for i in range(3):
            await case_service.create_case({"clientId": f"client-{i}", "assignedChampion": CHAMPION}, CREATOR)

        response = await client.get("/api/cases", params={"page": 2, "limit": 2}, headers=HEADERS)

        body = response.json()
        assert response.status_code == 200
        assert len(body["data"]) == 1
        assert body["pagination"] == {
            "currentPage": 2,
            "totalPages": 2,
            "totalItems": 3,
            "itemsPerPage": 2,
        }

    async def test_status_update(self, client, case):
        """Test a status change through the API."""
        response = await client.put(
            f"/api/cases/{case['id']}/status", json={"status": "In Progress"}, headers=HEADERS
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "In Progress"


class TestTaskEndpoints:
    """Test suite for task endpoints."""

    async def test_status_by_non_assignee(self, client, case, task_service):
        """Test that a non-assignee gets 403."""
        task = await task_service.create_task(
            {"onboardingCaseId": case["id"], "name": "T", "assignedTo": ["someone-else"]}, CREATOR
        )

        response = await client.put(f"/api/tasks/{task['id']}/status", json={"status": "Completed"}, headers=HEADERS)

        assert response.status_code == 403
        assert response.json()["error"]["error_code"] == "4002"


class TestHintEndpoints:
    """Test suite for hint resolution over HTTP."""

    async def test_stage_hints(self, client, case, stage_service, guide_service):
        """Test that stage hints come back in resolution order."""
        stage = await stage_service.create_stage({"onboardingCaseId": case["id"], "name": "Kickoff"}, CREATOR)
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)
        await guide_service.create_step({"guideId": guide["id"], "title": "general", "sequence": 2})
        await guide_service.create_step({
            "guideId": guide["id"], "title": "stage", "sequence": 1,
            "referenceType": "Stage", "stageOrTaskRef": stage["id"],
        })
        await guide_service.link_guide_to_case(case["id"], guide["id"], CREATOR)

        response = await client.get(
            "/api/guides/hints/stage", params={"caseId": case["id"], "stageId": stage["id"]}, headers=HEADERS
        )

        assert response.status_code == 200
        assert [h["title"] for h in response.json()["data"]] == ["stage", "general"]


class TestResourceEndpoints:
    """Test suite for generic CRUD resources."""

    async def test_client_crud(self, client):
        """Test create, update and delete of a client."""
        created = await client.post("/api/clients", json={"name": "Acme", "status": "Prospect"}, headers=HEADERS)
        client_id = created.json()["data"]["id"]

        updated = await client.put(f"/api/clients/{client_id}", json={"status": "Active"}, headers=HEADERS)
        deleted = await client.delete(f"/api/clients/{client_id}", headers=HEADERS)
        missing = await client.get(f"/api/clients/{client_id}", headers=HEADERS)

        assert created.status_code == 201
        assert updated.json()["data"]["status"] == "Active"
        assert deleted.status_code == 200
        assert missing.status_code == 404

    async def test_client_requires_name(self, client):
        """Test that store validation errors surface as 422."""
        response = await client.post("/api/clients", json={"status": "Active"}, headers=HEADERS)

        assert response.status_code == 422
        assert response.json()["error"]["error_code"] == "1002"
