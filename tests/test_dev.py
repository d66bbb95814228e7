from app.core.config import settings
from app.core.security import Role
from app.models.identity import IdentityUser

class TestSetClaims:

    def test_updates_claims(self, client, actor, db):
        actor("u1")
        response = client.post("/api/v1/dev/set-claims", json={
            "uid": "u1", "role": "nutri", "clinicId": "c1", "secret": "dev-secret"
        })
        assert response.status_code == 200
        assert response.json()["data"] == {"uid": "u1", "role": "nutri", "clinicId": "c1"}

        db.expire_all()
        user = db.get(IdentityUser, "u1")
        assert user.role == Role.NUTRI.value
        assert user.clinic_id == "c1"

    def test_wrong_secret_forbidden(self, client, actor):
        actor("u1")
        response = client.post("/api/v1/dev/set-claims", json={
            "uid": "u1", "role": "platform_admin", "secret": "guess"
        })
        assert response.status_code == 403
        assert response.json() == {"success": False, "message": "Forbidden"}

    def test_clinic_role_requires_clinic(self, client, actor):
        actor("u1")
        response = client.post("/api/v1/dev/set-claims", json={
            "uid": "u1", "role": "staff", "secret": "dev-secret"
        })
        assert response.status_code == 400

    def test_unknown_user(self, client):
        response = client.post("/api/v1/dev/set-claims", json={
            "uid": "ghost", "role": "platform_admin", "secret": "dev-secret"
        })
        assert response.status_code == 404

    def test_hidden_in_production(self, client, actor, monkeypatch):
        actor("u1")
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        response = client.post("/api/v1/dev/set-claims", json={
            "uid": "u1", "role": "platform_admin", "secret": "dev-secret"
        })
        assert response.status_code == 404

    def test_rate_limited(self, client, actor):
        actor("u1")
        payload = {"uid": "u1", "role": "platform_admin", "secret": "guess"}
        statuses = [
            client.post("/api/v1/dev/set-claims", json=payload).status_code
            for _ in range(settings.DEV_RATE_LIMIT_PER_HOUR + 1)
        ]
        assert statuses[-1] == 429

class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_api_health(self, client):
        response = client.get("/api/v1/health")
        assert response.json() == {"success": True, "data": {"ok": True}, "message": "api healthy"}

    def test_root_and_info_use_envelope(self, client):
        root = client.get("/").json()
        assert root["success"] is True
        assert root["data"]["health"] == "/health"

        info = client.get("/api/v1/info").json()
        assert info["success"] is True
        assert info["data"]["endpoints"]["patients"] == "/api/v1/patients"

    def test_unknown_route_uses_envelope(self, client):
        response = client.get("/api/v1/nowhere")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Not found"}
