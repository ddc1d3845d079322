"""End-to-end tests for the HTTP API."""
import logging

import pytest


class TestHealth:
    """Test health checks and the root endpoint."""

    def test_live(self, client):
        response = client.get("/live")
        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_ready(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["database"] == "ok"


class TestAuthentication:
    """Test credential handling on protected routes."""

    def test_missing_credentials(self, client, db):
        response = client.get("/api/v1/epics/")

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_wrong_scheme(self, client, db):
        response = client.get("/api/v1/epics/", headers={"Authorization": "Basic abc"})
        assert response.status_code == 401

    def test_login_and_profile(self, client, writer, password):
        response = client.post("/auth/login", json={"username": "writer", "password": password})
        assert response.status_code == 200
        tokens = response.json()

        profile = client.get("/auth/profile", headers={"Authorization": f"Bearer {tokens['access_token']}"})
        assert profile.json()["username"] == "writer"

        rotated = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert rotated.status_code == 200
        replayed = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert replayed.status_code == 401

    def test_personal_access_token(self, client, writer, auth_headers):
        """Test that a PAT works in X-API-Key and as a bearer token until revoked."""
        created = client.post("/api/v1/pats/", json={"name": "ci"}, headers=auth_headers(writer))
        assert created.status_code == 201
        token = created.json()["token"]
        pat_id = created.json()["pat"]["id"]

        assert client.get("/api/v1/epics/", headers={"X-API-Key": token}).status_code == 200
        assert client.get("/api/v1/epics/", headers={"Authorization": f"Bearer {token}"}).status_code == 200

        assert client.delete(f"/api/v1/pats/{pat_id}", headers=auth_headers(writer)).status_code == 204
        assert client.get("/api/v1/epics/", headers={"X-API-Key": token}).status_code == 401

    def test_commenter_cannot_create_epic(self, client, commenter, auth_headers):
        response = client.post(
            "/api/v1/epics/", json={"title": "Nope", "priority": 1}, headers=auth_headers(commenter),
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"


class TestHierarchy:
    """Test building and reading the product tree."""

    def test_create_tree(self, client, writer, auth_headers):
        headers = auth_headers(writer)

        epic = client.post("/api/v1/epics/", json={"title": "Onboarding", "priority": 1}, headers=headers)
        assert epic.status_code == 201
        assert epic.json()["reference_id"] == "EP-1"
        assert epic.json()["status"] == "Backlog"

        story = client.post(
            "/api/v1/user-stories/",
            json={"epic_id": "ep-1", "title": "Sign up with email", "priority": 2},
            headers=headers,
        )
        assert story.json()["reference_id"] == "US-1"

        criteria = client.post(
            "/api/v1/acceptance-criteria/",
            json={"user_story_id": "US-1", "description": "When the email is taken, the system shall say so"},
            headers=headers,
        )
        assert criteria.json()["reference_id"] == "AC-1"

        requirement = client.post(
            "/api/v1/requirements/",
            json={
                "user_story_id": "US-1",
                "acceptance_criteria_id": "AC-1",
                "type_id": "functional",
                "title": "Reject duplicate emails",
                "priority": 1,
            },
            headers=headers,
        )
        assert requirement.status_code == 201
        assert requirement.json()["status"] == "Draft"

        hierarchy = client.get("/api/v1/epics/EP-1/hierarchy", headers=headers).json()
        assert hierarchy["user_stories"][0]["requirements"][0]["reference_id"] == "REQ-1"

    def test_list_pagination(self, client, writer, auth_headers):
        headers = auth_headers(writer)
        for index in range(3):
            client.post("/api/v1/epics/", json={"title": f"Epic {index}", "priority": 3}, headers=headers)

        body = client.get("/api/v1/epics/", params={"page": 2, "page_size": 2}, headers=headers).json()

        assert body["total"] == 3
        assert body["total_pages"] == 2
        assert len(body["items"]) == 1

    def test_bad_body(self, client, writer, auth_headers):
        response = client.post("/api/v1/epics/", json={"title": "", "priority": 9}, headers=auth_headers(writer))

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION"
        assert {tuple(error["loc"])[-1] for error in body["details"]["errors"]} == {"title", "priority"}

    def test_unknown_reference(self, client, writer, auth_headers):
        response = client.get("/api/v1/epics/EP-99", headers=auth_headers(writer))
        assert response.status_code == 404


class TestStatus:
    """Test status transitions over HTTP."""

    @pytest.mark.parametrize("status", ["Obsolete", "Done"])
    def test_invalid_transition_lists_valid_values(self, client, writer, auth_headers, requirement, status):
        response = client.patch(
            "/api/v1/requirements/REQ-1/status", json={"status": status}, headers=auth_headers(writer),
        )

        assert response.status_code == 400
        assert response.json()["details"]["valid_values"] == ["Active"]

    def test_alias_is_normalized(self, client, writer, auth_headers, epic):
        response = client.patch(
            "/api/v1/epics/EP-1/status", json={"status": "inprogress"}, headers=auth_headers(writer),
        )
        assert response.json()["status"] == "In Progress"

    def test_allowed_transitions(self, client, writer, auth_headers):
        response = client.get("/api/v1/config/transitions/epic", params={"current_status": "Done"}, headers=auth_headers(writer))
        assert response.json()["allowed_transitions"] == ["In Progress"]


class TestDeletion:
    """Test the two delete routes."""

    def test_plain_delete_refuses_then_force_succeeds(self, client, writer, auth_headers, requirement):
        headers = auth_headers(writer)

        refused = client.delete("/api/v1/epics/EP-1", headers=headers)
        assert refused.status_code == 409
        assert refused.json()["details"] == {"dependencies": {"user_stories": 1}}

        report = client.get("/api/v1/epics/EP-1/validate-deletion", headers=headers).json()
        assert report["can_delete"] is False

        forced = client.delete("/api/v1/epics/EP-1/delete", headers=headers)
        assert forced.status_code == 200
        assert forced.json()["deleted"] == {
            "requirements": 1, "acceptance_criteria": 1, "user_stories": 1, "epics": 1,
        }

        assert client.get("/api/v1/requirements/REQ-1", headers=headers).status_code == 404


class TestSearch:
    """Test search over HTTP."""

    def test_reference_id_first(self, client, writer, auth_headers, requirement):
        body = client.get("/api/v1/search/", params={"q": "AC-1"}, headers=auth_headers(writer)).json()

        assert body["results"][0]["reference_id"] == "AC-1"
        assert body["results"][0]["entity_type"] == "acceptance_criteria"

    @pytest.mark.parametrize("params", [{"q": ""}, {"q": "card", "limit": 101}, {"q": "card", "entity_types": "project"}])
    def test_invalid_query(self, client, writer, auth_headers, params):
        response = client.get("/api/v1/search/", params=params, headers=auth_headers(writer))
        assert response.status_code == 400


class TestNavigation:
    """Test hierarchy browsing over HTTP."""

    def test_breadcrumb_and_tree(self, client, writer, auth_headers, requirement):
        headers = auth_headers(writer)

        path = client.get("/api/v1/hierarchy/path/requirement/REQ-1", headers=headers).json()["path"]
        assert [step["reference_id"] for step in path] == ["EP-1", "US-1", "REQ-1"]

        tree = client.get("/api/v1/hierarchy/", params={"expand": "user_stories,acceptance_criteria"}, headers=headers).json()
        assert tree["total"] == 1
        assert tree["epics"][0]["user_stories"][0]["acceptance_criteria"][0]["reference_id"] == "AC-1"

    def test_bad_expand(self, client, writer, auth_headers, story):
        response = client.get(
            "/api/v1/hierarchy/user-stories/US-1", params={"expand": "everything"}, headers=auth_headers(writer),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION"


class TestComments:
    """Test comment threads over HTTP."""

    def test_thread(self, client, writer, commenter, auth_headers, epic):
        root = client.post(
            "/api/v1/comments/epic/EP-1", json={"content": "Which payment providers?"}, headers=auth_headers(commenter),
        )
        assert root.status_code == 201
        root_id = root.json()["id"]

        reply = client.post(
            "/api/v1/comments/epic/EP-1",
            json={"content": "Stripe first", "parent_comment_id": root_id},
            headers=auth_headers(writer),
        )
        assert reply.status_code == 201

        listed = client.get("/api/v1/comments/epic/EP-1", headers=auth_headers(writer)).json()
        assert [item["id"] for item in listed["items"]] == [root_id]

        replies = client.get(f"/api/v1/comments/{root_id}/replies", headers=auth_headers(writer)).json()
        assert replies["total"] == 1

        assert client.delete(f"/api/v1/comments/{root_id}", headers=auth_headers(commenter)).status_code == 409
        resolved = client.patch(f"/api/v1/comments/{root_id}/resolve", headers=auth_headers(commenter))
        assert resolved.json()["is_resolved"] is True

    def test_partial_inline_fields_rejected(self, client, writer, auth_headers, epic):
        response = client.post(
            "/api/v1/comments/epic/EP-1",
            json={"content": "Anchor", "linked_text": "order"},
            headers=auth_headers(writer),
        )
        assert response.status_code == 400


class TestAdministration:
    """Test administrator-only routes."""

    def test_writer_cannot_list_users(self, client, writer, auth_headers):
        assert client.get("/api/v1/users/", headers=auth_headers(writer)).status_code == 403

    def test_admin_manages_users(self, client, admin, auth_headers):
        created = client.post(
            "/api/v1/users/",
            json={"username": "reviewer", "email": "reviewer@example.com", "password": "long-enough", "role": "Commenter"},
            headers=auth_headers(admin),
        )
        assert created.status_code == 201
        assert created.json()["role"] == "Commenter"

        duplicate = client.post(
            "/api/v1/users/",
            json={"username": "reviewer", "email": "other@example.com", "password": "long-enough"},
            headers=auth_headers(admin),
        )
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "DUPLICATE_KEY"


class TestErrorLogging:
    """Test how rejected requests are logged."""

    @pytest.mark.parametrize("path, body, logger_name, status", [
        ("/api/v1/epics/", {"title": "Nope", "priority": 1}, "prm-api.epics", 403),
        ("/api/v1/user-stories/", {"epic_id": "EP-99", "title": "Orphan", "priority": 2}, "prm-api.user_stories", 404),
    ])
    def test_domain_errors_logged_as_warning(self, client, commenter, writer, auth_headers, caplog, path, body, logger_name, status):
        """Test that 4xx domain errors are a WARNING without a traceback."""
        caplog.set_level(logging.INFO)
        user = commenter if status == 403 else writer

        response = client.post(path, json=body, headers=auth_headers(user))

        assert response.status_code == status
        records = [record for record in caplog.records if record.name == logger_name]
        assert [record.levelname for record in records] == ["WARNING"]
        assert records[0].exc_info is None
        assert not [record for record in caplog.records if record.levelno >= logging.ERROR]


class TestScenarios:
    """End-to-end flows with fixed inputs."""

    def _build_auth_tree(self, client, headers):
        epic = client.post("/api/v1/epics/", json={"title": "Auth", "priority": 2}, headers=headers)
        story = client.post(
            "/api/v1/user-stories/", json={"epic_id": "EP-1", "title": "Login", "priority": 3}, headers=headers,
        )
        criteria = client.post(
            "/api/v1/acceptance-criteria/",
            json={"user_story_id": "US-1", "description": "WHEN valid credentials are submitted THE SYSTEM SHALL sign the user in"},
            headers=headers,
        )
        requirement = client.post(
            "/api/v1/requirements/",
            json={
                "user_story_id": "US-1",
                "acceptance_criteria_id": criteria.json()["reference_id"],
                "type_id": "Functional",
                "title": "Lock login after five failed attempts",
                "priority": 2,
            },
            headers=headers,
        )
        return epic, story, criteria, requirement

    def test_create_hierarchy(self, client, writer, auth_headers):
        epic, story, criteria, requirement = self._build_auth_tree(client, auth_headers(writer))

        assert epic.json()["reference_id"] == "EP-1"
        assert story.json()["reference_id"] == "US-1"
        assert criteria.status_code == 201
        assert requirement.json()["reference_id"] == "REQ-1"
        assert requirement.json()["acceptance_criteria_id"] == criteria.json()["id"]

    def test_requirement_status(self, client, writer, auth_headers):
        headers = auth_headers(writer)
        self._build_auth_tree(client, headers)

        rejected = client.patch("/api/v1/requirements/REQ-1/status", json={"status": "Done"}, headers=headers)
        assert rejected.status_code == 400
        assert rejected.json()["code"] == "VALIDATION"
        assert rejected.json()["details"]["valid_values"] == ["Active"]

        accepted = client.patch("/api/v1/requirements/REQ-1/status", json={"status": "Active"}, headers=headers)
        assert accepted.json()["status"] == "Active"

    def test_epic_deletion(self, client, writer, auth_headers):
        headers = auth_headers(writer)
        self._build_auth_tree(client, headers)

        report = client.get("/api/v1/epics/EP-1/validate-deletion", headers=headers).json()
        assert {kind: [item["reference_id"] for item in items] for kind, items in report["dependencies"].items()} == {
            "user_stories": ["US-1"],
        }
        assert client.delete("/api/v1/epics/EP-1", headers=headers).status_code == 409

        forced = client.delete("/api/v1/epics/EP-1/delete", headers=headers)
        assert forced.json()["deleted"] == {"epics": 1, "user_stories": 1, "acceptance_criteria": 1, "requirements": 1}

    def test_token_revocation(self, client, writer, auth_headers):
        created = client.post("/api/v1/pats/", json={"name": "ci"}, headers=auth_headers(writer)).json()
        assert created["token"].startswith("mcp_pat_")

        assert client.get("/auth/profile", headers={"X-API-Key": created["token"]}).status_code == 200
        client.delete(f"/api/v1/pats/{created['pat']['id']}", headers=auth_headers(writer))
        assert client.get("/auth/profile", headers={"X-API-Key": created["token"]}).status_code == 401

    def test_prompt_activation(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        for name in ("p1", "p2"):
            client.post("/api/v1/prompts/", json={"name": name, "title": name.upper(), "content": "Be brief."}, headers=headers)
        client.post("/api/v1/prompts/PROMPT-1/activate", headers=headers)

        client.post("/api/v1/prompts/PROMPT-2/activate", headers=headers)

        items = client.get("/api/v1/prompts/", headers=headers).json()["items"]
        assert {item["name"]: item["is_active"] for item in items} == {"p1": False, "p2": True}

    def test_global_search(self, client, writer, auth_headers):
        headers = auth_headers(writer)
        self._build_auth_tree(client, headers)

        everything = client.get("/api/v1/search/", params={"q": "Login"}, headers=headers).json()
        assert "US-1" in [result["reference_id"] for result in everything["results"]]

        requirements_only = client.get(
            "/api/v1/search/", params={"q": "Login", "entity_types": ["requirement"]}, headers=headers,
        ).json()
        assert [result["reference_id"] for result in requirements_only["results"]] == ["REQ-1"]
        assert requirements_only["entity_types"] == ["requirement"]
