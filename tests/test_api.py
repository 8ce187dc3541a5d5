"""End-to-end API tests through the FastAPI TestClient."""

import pytest

from tests.conftest import grant, login_headers, make_role, make_user, system_role
from tidegate.core import catalog
from tidegate.core.scope import ScopeType
from tidegate.models import AuditLog


@pytest.fixture()
def admin(db):
    user = make_user(db, "admin", "admin-password")
    grant(db, user.id, system_role(db, "super_admin"))
    return user


@pytest.fixture()
def admin_headers(client, admin):
    return login_headers(client, "admin", "admin-password")


@pytest.fixture()
def alice(db):
    return make_user(db)


@pytest.fixture()
def alice_headers(client, alice):
    return login_headers(client)


class TestAuthentication:

    def test_missing_token(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Bearer"
        body = resp.json()
        assert body["error"] == "UNAUTHORIZED"
        assert set(body) == {"error", "message", "details"}

    def test_unknown_token(self, client):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer tga_bogus"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid or expired token"

    def test_login_and_me(self, client, alice):
        resp = client.post("/api/auth/login", json={"username": "alice", "password": "correct-horse"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["access_token"].startswith("tga_")
        assert body["refresh_token"].startswith("tgr_")
        assert body["user"]["username"] == "alice"
        assert "password_hash" not in body["user"]

        client.cookies.clear()
        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.status_code == 200
        assert me.json()["user"]["id"] == alice.id
        assert [g["role_name"] for g in me.json()["grants"]] == ["viewer"]

    def test_bad_credentials(self, client, alice):
        resp = client.post("/api/auth/login", json={"username": "alice", "password": "nope-nope"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid username or password"

    def test_token_via_query_parameter(self, client, alice_headers):
        token = alice_headers["Authorization"].split(" ", 1)[1]
        assert client.get("/api/auth/me", params={"token": token}).status_code == 200

    def test_token_via_cookie(self, client, alice_headers):
        token = alice_headers["Authorization"].split(" ", 1)[1]
        client.cookies.set("token", token)
        assert client.get("/api/auth/me").status_code == 200

    def test_logout_revokes_token(self, client, alice_headers):
        assert client.post("/api/auth/logout", headers=alice_headers).status_code == 204
        assert client.get("/api/auth/me", headers=alice_headers).status_code == 401

    def test_refresh(self, client, alice):
        login = client.post("/api/auth/login", json={"username": "alice", "password": "correct-horse"}).json()
        client.cookies.clear()
        resp = client.post("/api/auth/refresh", json={"refresh_token": login["refresh_token"]})
        assert resp.status_code == 200
        new_token = resp.json()["access_token"]
        assert new_token != login["access_token"]
        assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {login['access_token']}"}).status_code == 401
        assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {new_token}"}).status_code == 200

    def test_refresh_with_bad_token(self, client):
        resp = client.post("/api/auth/refresh", json={"refresh_token": "tgr_bogus"})
        assert resp.status_code == 401

    def test_change_password_revokes_sessions(self, client, alice_headers):
        resp = client.post(
            "/api/auth/change-password",
            json={"current_password": "correct-horse", "new_password": "battery-staple"},
            headers=alice_headers,
        )
        assert resp.status_code == 200
        assert resp.json() == {"revoked": 1}
        assert client.get("/api/auth/me", headers=alice_headers).status_code == 401

    def test_permission_check(self, client, alice_headers):
        allowed = client.post("/api/auth/permissions/check", headers=alice_headers,
                              json={"resource_type": "pod", "action": "read", "cluster": "prod"})
        assert allowed.json() == {"allowed": True, "reason": None}
        denied = client.post("/api/auth/permissions/check", headers=alice_headers,
                             json={"resource_type": "pod", "action": "delete", "cluster": "prod"})
        assert denied.json()["allowed"] is False
        assert "pod:delete" in denied.json()["reason"]

    @pytest.mark.parametrize("resource_type, action", [("pod", "scale"), ("ship", "read"), ("pod", "")])
    def test_permission_check_rejects_unknown_pair(self, client, alice, alice_headers, resource_type, action):
        resp = client.post("/api/auth/permissions/check", headers=alice_headers,
                           json={"resource_type": resource_type, "action": action})
        assert resp.status_code == 400
        assert resp.json()["error"] == "VALIDATION_ERROR"


class TestAuthorizationGate:

    def test_denied_request_is_audited(self, client, db, alice, alice_headers):
        resp = client.get("/api/roles", headers=alice_headers)
        assert resp.status_code == 403
        assert resp.json()["error"] == "FORBIDDEN"
        entry = db.query(AuditLog).filter(AuditLog.status == "denied").one()
        assert entry.user_id == alice.id
        assert entry.action == "role:read"
        assert entry.details["path"] == "/api/roles"

    def test_register_requires_user_create(self, client, alice_headers, admin_headers):
        body = {"username": "bob", "email": "bob@example.com", "password": "bob-password"}
        assert client.post("/api/auth/register", json=body, headers=alice_headers).status_code == 403
        resp = client.post("/api/auth/register", json=body, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json()["username"] == "bob"


class TestRolesApi:

    def test_crud(self, client, admin_headers):
        ids = [catalog.get_by_name("pod:read").id]
        created = client.post("/api/roles", headers=admin_headers, json={
            "name": "pod-viewer", "display_name": "Pod viewer", "permission_ids": ids,
        })
        assert created.status_code == 201
        role = created.json()
        assert role["type"] == "custom"
        assert [p["name"] for p in role["permissions"]] == ["pod:read"]

        fetched = client.get(f"/api/roles/{role['id']}", headers=admin_headers)
        assert fetched.json()["name"] == "pod-viewer"

        updated = client.put(f"/api/roles/{role['id']}", headers=admin_headers,
                             json={"description": "Reads pods"})
        assert updated.json()["description"] == "Reads pods"

        listed = client.get("/api/roles", headers=admin_headers, params={"type": "custom"})
        assert listed.json()["total"] == 1

        assert client.delete(f"/api/roles/{role['id']}", headers=admin_headers).status_code == 204
        assert client.get(f"/api/roles/{role['id']}", headers=admin_headers).status_code == 404

    def test_duplicate_name(self, client, admin_headers):
        resp = client.post("/api/roles", headers=admin_headers, json={"name": "viewer", "display_name": "Dup"})
        assert resp.status_code == 409
        assert resp.json()["error"] == "CONFLICT"

    def test_system_role_cannot_be_deleted(self, client, db, admin_headers):
        viewer = system_role(db, "viewer")
        assert client.delete(f"/api/roles/{viewer.id}", headers=admin_headers).status_code == 403

    def test_system_role_is_read_only(self, client, db, admin_headers):
        viewer = system_role(db, "viewer")
        renamed = client.put(f"/api/roles/{viewer.id}", headers=admin_headers, json={"display_name": "Hijacked"})
        assert renamed.status_code == 403
        widened = client.put(
            f"/api/roles/{viewer.id}/permissions",
            headers=admin_headers,
            json={"permission_ids": [catalog.get_by_name("user:create").id]},
        )
        assert widened.status_code == 403
        assert widened.json()["error"] == "FORBIDDEN"

    def test_replace_and_remove_permissions(self, client, db, admin_headers):
        role = make_role(db, "ops", "pod:read")
        url = f"/api/roles/{role.id}/permissions"
        ids = [catalog.get_by_name(n).id for n in ("pod:logs", "pod:exec")]
        resp = client.put(url, headers=admin_headers, json={"permission_ids": ids})
        assert sorted(p["name"] for p in resp.json()) == ["pod:exec", "pod:logs"]

        bad = client.put(url, headers=admin_headers, json={"permission_ids": ids + ["bogus"]})
        assert bad.status_code == 404
        assert bad.json()["error"] == "PERMISSION_NOT_FOUND"

        resp = client.request("DELETE", url, headers=admin_headers, json={"permission_ids": ids[:1]})
        assert [p["name"] for p in resp.json()] == ["pod:exec"]

    def test_permission_catalog(self, client, admin_headers):
        resp = client.get("/api/permissions", headers=admin_headers, params={"resource_type": "node"})
        assert resp.status_code == 200
        assert sorted(p["name"] for p in resp.json()) == sorted(p.name for p in catalog.by_resource("node"))

        unknown = client.get("/api/permissions", headers=admin_headers, params={"resource_type": "ship"})
        assert unknown.status_code == 400

    def test_permission_catalog_grouped(self, client, admin_headers):
        resp = client.get("/api/permissions/grouped", headers=admin_headers)
        assert resp.status_code == 200
        grouped = resp.json()
        assert [p["action"] for p in grouped["namespace"]] == ["read", "create", "delete"]
        assert sum(len(v) for v in grouped.values()) == len(catalog.PERMISSIONS)
        assert grouped["node"][0]["scope"] == "cluster"

    def test_mutations_are_audited(self, client, db, admin, admin_headers):
        client.post("/api/roles", headers=admin_headers, json={"name": "ops", "display_name": "Ops"})
        entry = db.query(AuditLog).filter(AuditLog.action == "role_create").one()
        assert entry.user_id == admin.id
        assert entry.details["name"] == "ops"


class TestGrantsApi:

    def test_assign_list_revoke(self, client, db, alice, admin_headers):
        role = make_role(db, "pod-exec", "pod:exec")
        url = f"/api/users/{alice.id}/roles"
        resp = client.post(url, headers=admin_headers, json={
            "role_id": role.id, "scope_type": "namespace", "scope_value": "prod/default",
        })
        assert resp.status_code == 201
        assert resp.json()["scope_value"] == "prod/default"

        listed = client.get(url, headers=admin_headers, params={"scope_type": "namespace"})
        assert [g["role_name"] for g in listed.json()] == ["pod-exec"]

        entry = db.query(AuditLog).filter(AuditLog.action == "grant_assign").one()
        assert entry.cluster_name == "prod"
        assert entry.namespace == "default"

        params = {"role_id": role.id, "scope_type": "namespace", "scope_value": "prod/other"}
        assert client.delete(url, headers=admin_headers, params=params).status_code == 404
        params["scope_value"] = "prod/default"
        assert client.delete(url, headers=admin_headers, params=params).status_code == 204

    def test_malformed_scope(self, client, alice, db, admin_headers):
        role = make_role(db, "ops")
        resp = client.post(f"/api/users/{alice.id}/roles", headers=admin_headers, json={
            "role_id": role.id, "scope_type": "namespace", "scope_value": "prod",
        })
        assert resp.status_code == 400
        assert resp.json()["details"] == {"field": "scope_value"}


class TestScopedPermissions:

    def test_effective_permissions_follow_scope(self, client, db, alice, alice_headers):
        grant(db, alice.id, make_role(db, "pod-exec", "pod:exec"), ScopeType.CLUSTER, "prod")

        prod = client.get("/api/clusters/prod/permissions", headers=alice_headers).json()
        assert "pod:exec" in prod["permissions"]
        assert "pod:read" in prod["permissions"]

        staging = client.get("/api/clusters/staging/permissions", headers=alice_headers).json()
        assert "pod:exec" not in staging["permissions"]

        ns = client.get("/api/clusters/prod/namespaces/default/permissions", headers=alice_headers).json()
        assert ns["namespace"] == "default"
        assert "pod:exec" in ns["permissions"]


class TestAuditLogsApi:

    def test_requires_audit_read(self, client, alice_headers):
        assert client.get("/api/audit-logs", headers=alice_headers).status_code == 403

    def test_list_and_get(self, client, admin_headers):
        client.post("/api/roles", headers=admin_headers, json={"name": "ops", "display_name": "Ops"})
        resp = client.get("/api/audit-logs", headers=admin_headers, params={"action": "role_create"})
        assert resp.status_code == 200
        page = resp.json()
        assert page["total"] == 1
        entry_id = page["items"][0]["id"]
        assert client.get(f"/api/audit-logs/{entry_id}", headers=admin_headers).json()["action"] == "role_create"
        assert client.get("/api/audit-logs/999999", headers=admin_headers).status_code == 404


class TestSessionsApi:

    def test_list_requires_user_read(self, client, alice_headers):
        assert client.get("/api/sessions", headers=alice_headers).status_code == 403

    def test_list_and_revoke(self, client, db, alice, alice_headers, admin_headers):
        listed = client.get("/api/sessions", headers=admin_headers, params={"user_id": alice.id, "active": True})
        assert listed.status_code == 200
        items = listed.json()["items"]
        assert len(items) == 1
        assert "token_hash" not in items[0]

        session_id = items[0]["id"]
        assert client.delete(f"/api/sessions/{session_id}", headers=admin_headers).status_code == 204
        assert client.get("/api/auth/me", headers=alice_headers).status_code == 401
        assert client.delete(f"/api/sessions/{session_id}", headers=admin_headers).status_code == 404

        entry = db.query(AuditLog).filter(AuditLog.action == "session_revoke").one()
        assert entry.resource_id == session_id
