"""
Integration tests for the HTTP API
Runs the full app against a temporary SQLite database with the Gemini
gateway replaced by a mock
"""
import sqlite3

import pytest
from fastapi.testclient import TestClient

from insitu.core.context import AppContext
from insitu.main import create_app
from insitu.services.generation_orchestrator import GenerationState

PASSWORD = "correct-horse"


@pytest.fixture
def api_settings(test_settings, tmp_path):
    test_settings.database_url = f"sqlite+aiosqlite:///{tmp_path / 'api.db'}"
    return test_settings


@pytest.fixture
def context(api_settings, mock_gateway):
    return AppContext(api_settings, gateway=mock_gateway)


@pytest.fixture
def client(context):
    app = create_app(context=context)
    with TestClient(app) as client:
        # Pin one client session for the whole test
        response = client.get("/api/auth/status")
        client.headers["X-Session-ID"] = response.headers["X-Session-ID"]
        yield client


def register(client, email="maker@example.com", name="Maker"):
    response = client.post("/api/auth/register", json={"email": email, "password": PASSWORD, "name": name})
    assert response.status_code == 200, response.text
    return response.json()


def upload(client, image_factory, count=1):
    files = [("files", (f"product{i}.png", image_factory(), "image/png")) for i in range(count)]
    return client.post("/api/workspace/images", files=files)


def generate_record(client, image_factory, prompt="Place the lamp on a walnut desk"):
    upload(client, image_factory)
    body = client.post("/api/workspace/generate", json={"prompt": prompt}).json()
    assert body["state"] == "success", body
    return body["record_id"]


class TestAppBasics:
    @pytest.mark.integration
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.integration
    def test_root_lists_endpoints(self, client):
        assert "workspace" in client.get("/").json()["endpoints"]

    @pytest.mark.integration
    def test_session_id_is_echoed(self, client):
        sid = client.headers["X-Session-ID"]
        assert client.get("/api/workspace").headers["X-Session-ID"] == sid
        assert "X-Request-ID" in client.get("/api/workspace").headers

    @pytest.mark.integration
    def test_anonymous_image_lookups_create_no_sessions(self, client, context):
        before = len(context.sessions)

        for _ in range(20):
            assert client.get("/api/images/missing", headers={"X-Session-ID": ""}).status_code == 404

        assert len(context.sessions) == before

    @pytest.mark.integration
    def test_session_map_is_bounded(self, client, context, api_settings):
        api_settings.max_sessions = 5

        for _ in range(50):
            client.get("/api/navigation", headers={"X-Session-ID": ""})

        assert len(context.sessions) == 5


class TestAuthFlow:
    """Tests for sign-in endpoints"""

    @pytest.mark.integration
    def test_register_then_status(self, client):
        body = register(client)

        assert body["token_type"] == "bearer"
        status = client.get("/api/auth/status").json()
        assert status["authenticated"] is True
        assert status["user"]["email"] == "maker@example.com"
        assert client.get("/api/auth/me").json()["name"] == "Maker"

    @pytest.mark.integration
    def test_bad_login(self, client):
        register(client)
        client.post("/api/auth/logout")

        response = client.post("/api/auth/login", json={"email": "maker@example.com", "password": "nope-nope"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    @pytest.mark.integration
    def test_logout_when_signed_out(self, client):
        response = client.post("/api/auth/logout")
        assert response.status_code == 401
        assert response.json()["detail"] == "Failed to logout"

    @pytest.mark.integration
    def test_bearer_token_restores_new_session(self, client):
        token = register(client)["access_token"]

        response = client.get(
            "/api/auth/me",
            headers={"X-Session-ID": "unknown-session", "Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 200
        assert response.json()["email"] == "maker@example.com"
        assert response.headers["X-Session-ID"] != "unknown-session"

    @pytest.mark.integration
    def test_me_requires_auth(self, client):
        assert client.get("/api/auth/me").status_code == 401


class TestWorkspace:
    """Tests for the generation workspace endpoints"""

    @pytest.mark.integration
    def test_upload_and_preview(self, client, image_factory):
        body = upload(client, image_factory, count=2).json()

        assert [image["filename"] for image in body["images"]] == ["product0.png", "product1.png"]
        preview = client.get(body["images"][0]["url"])
        assert preview.status_code == 200
        assert preview.headers["content-type"] == "image/png"

    @pytest.mark.integration
    def test_removed_preview_is_gone(self, client, image_factory):
        body = upload(client, image_factory).json()
        url = body["images"][0]["url"]

        body = client.delete("/api/workspace/images/0").json()

        assert body["images"] == []
        assert client.get(url).status_code == 404

    @pytest.mark.integration
    def test_over_cap_upload_is_rejected(self, client, image_factory):
        body = upload(client, image_factory, count=5).json()

        assert body["images"] == []
        assert body["error"] == "You can upload a maximum of 4 images"

    @pytest.mark.integration
    def test_generate_requires_sign_in(self, client, image_factory, mock_gateway):
        upload(client, image_factory)

        body = client.post("/api/workspace/generate", json={"prompt": "on a desk"}).json()

        assert body["state"] == "failure"
        assert body["error"] == "You must be logged in to generate images."
        mock_gateway.generate.assert_not_called()

    @pytest.mark.integration
    def test_generate_while_busy_conflicts(self, client, context, image_factory):
        register(client)
        upload(client, image_factory)
        session = context.sessions[client.headers["X-Session-ID"]]
        session.workspace.state = GenerationState.AWAITING_RESULT

        response = client.post("/api/workspace/generate", json={"prompt": "on a desk"})

        assert response.status_code == 409

    @pytest.mark.integration
    def test_generate_and_persist(self, client, image_factory, generated_image):
        register(client)
        upload(client, image_factory)

        body = client.post("/api/workspace/generate", json={"preset_id": "studio-shot"}).json()

        assert body["state"] == "success"
        assert body["result_url"] == generated_image.data_url
        assert body["record_id"]
        mine = client.get("/api/images/mine").json()["images"]
        assert [image["id"] for image in mine] == [body["record_id"]]
        assert client.get(mine[0]["image_url"]).status_code == 200

    @pytest.mark.integration
    def test_unknown_preset(self, client, image_factory):
        register(client)
        upload(client, image_factory)
        assert client.post("/api/workspace/generate", json={"preset_id": "moon"}).status_code == 404

    @pytest.mark.integration
    def test_presets(self, client):
        ids = [preset["id"] for preset in client.get("/api/workspace/presets").json()]
        assert "intelligent" in ids
        assert len(ids) == 9


class TestImages:
    """Tests for galleries, favorites and share links"""

    @pytest.mark.integration
    def test_private_image_hidden_from_others(self, client, context, image_factory):
        register(client)
        image_id = generate_record(client, image_factory)
        client.post("/api/auth/logout")

        assert client.get(f"/api/images/{image_id}").status_code == 404

    @pytest.mark.integration
    def test_publish_search_favorite_share(self, client, image_factory):
        register(client)
        image_id = generate_record(client, image_factory)

        updated = client.patch(f"/api/images/{image_id}", json={"is_public": True}).json()
        assert updated["is_public"] is True
        assert [i["id"] for i in client.get("/api/images/public").json()["images"]] == [image_id]
        assert [i["id"] for i in client.get("/api/images/search", params={"q": "WALNUT"}).json()] == [image_id]

        assert client.post(f"/api/images/{image_id}/favorite").status_code == 201
        assert client.get(f"/api/images/{image_id}/favorite").json() == {"favorited": True}
        assert len(client.get("/api/images/favorites").json()["images"]) == 1

        share = client.post(f"/api/images/{image_id}/share").json()
        shared = client.get(f"/api/shared/{share['token']}").json()
        assert shared["image"]["id"] == image_id
        assert shared["share"]["view_count"] == 1
        assert client.get(f"/api/shared/{share['token']}").json()["share"]["view_count"] == 2

    @pytest.mark.integration
    def test_unknown_share_token(self, client):
        assert client.get("/api/shared/nope").status_code == 404

    @pytest.mark.integration
    def test_delete_image(self, client, image_factory):
        register(client)
        image_id = generate_record(client, image_factory)

        assert client.delete(f"/api/images/{image_id}").status_code == 204
        assert client.get(f"/api/images/{image_id}").status_code == 404
        assert client.get("/api/profile").json()["stats"]["images_generated"] == 0


class TestProfile:
    @pytest.mark.integration
    def test_get_and_update_profile(self, client):
        register(client)

        assert client.get("/api/profile").json()["name"] == "Maker"
        updated = client.patch("/api/profile", json={"bio": "Lamp maker", "preferences": {"theme": "dark"}}).json()

        assert updated["bio"] == "Lamp maker"
        assert updated["preferences"]["theme"] == "dark"

    @pytest.mark.integration
    def test_avatar_upload(self, client, image_factory):
        register(client)

        response = client.post("/api/profile/avatar", files={"file": ("me.png", image_factory(), "image/png")})

        assert response.status_code == 200
        assert response.json()["avatar"].startswith("/files/avatars/")

    @pytest.mark.integration
    def test_avatar_rejects_unsupported_type(self, client):
        register(client)
        response = client.post("/api/profile/avatar", files={"file": ("me.gif", b"GIF89a", "image/gif")})
        assert response.status_code == 400


class TestAdmin:
    @pytest.mark.integration
    def test_admin_requires_label(self, client, api_settings):
        register(client)
        assert client.get("/api/admin/stats").status_code == 403

        db_path = api_settings.database_url.split("///", 1)[1]
        with sqlite3.connect(db_path) as conn:
            conn.execute("UPDATE accounts SET labels = ? WHERE email = ?", ('["admin"]', "maker@example.com"))

        client.post("/api/auth/logout")
        client.post("/api/auth/login", json={"email": "maker@example.com", "password": PASSWORD})

        stats = client.get("/api/admin/stats")
        assert stats.status_code == 200
        assert stats.json()["total_users"] == 1
        assert len(client.get("/api/admin/users").json()["users"]) == 1
        assert client.get("/api/admin/generation-usage").json()["total_requests"] == 0


class TestNavigation:
    """Tests for the navigation endpoints"""

    @pytest.mark.integration
    def test_protected_route_renders_login(self, client):
        body = client.post("/api/navigation/navigate", json={"path": "/gallery"}).json()

        assert body["current_path"] == "/gallery"
        assert body["history"] == ["/", "/gallery"]
        assert body["decision"]["kind"] == "login"

    @pytest.mark.integration
    def test_sign_in_rerenders_current_route(self, client):
        client.post("/api/navigation/navigate", json={"path": "/gallery"})
        register(client)

        assert client.get("/api/navigation").json()["decision"]["view"] == "gallery"

    @pytest.mark.integration
    def test_back_and_popstate(self, client):
        client.post("/api/navigation/navigate", json={"path": "/search"})
        client.post("/api/navigation/navigate", json={"path": "/images/abc"})

        body = client.post("/api/navigation/back").json()
        assert body["current_path"] == "/search"

        body = client.post("/api/navigation/popstate", json={"path": "/"}).json()
        assert body["current_path"] == "/"
        assert body["history"] == ["/"]

        body = client.post("/api/navigation/back").json()
        assert body["history"] == ["/"]

    @pytest.mark.integration
    def test_resolve(self, client):
        decision = client.get("/api/navigation/resolve", params={"path": "/images/abc"}).json()
        assert decision["view"] == "image_detail"
        assert decision["params"] == {"imageId": "abc"}
        assert client.get("/api/navigation/resolve", params={"path": "/nope"}).json()["kind"] == "not_found"
