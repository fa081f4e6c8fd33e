"""Integration tests for the /api/v1/families and /api/v1/users endpoints."""

import uuid


async def _create_user(client, name="Test User", apple_hash=None):
    resp = await client.post("/api/v1/users", json={
        "display_name": name,
        "apple_user_id_hash": apple_hash or f"hash_{uuid.uuid4().hex}",
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _create_family(client, user_id, name="Test Family", code="TEST123"):
    resp = await client.post("/api/v1/families", json={
        "name": name,
        "code": code,
        "created_by_user_id": user_id,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestCreateFamily:
    async def test_create_family(self, client):
        user = await _create_user(client)
        data = await _create_family(client, user["id"])

        assert data["name"] == "Test Family"
        assert data["code"] == "TEST123"
        assert data["needs_sync"] is True
        assert data["ck_record_id"] is None

    async def test_code_is_generated(self, client):
        user = await _create_user(client)
        resp = await client.post("/api/v1/families", json={
            "name": "Generated Code",
            "created_by_user_id": user["id"],
        })
        assert resp.status_code == 201
        code = resp.json()["code"]
        assert len(code) == 6
        assert code.isalnum()

    async def test_invalid_family(self, client):
        user = await _create_user(client)
        resp = await client.post("/api/v1/families", json={
            "name": "A",
            "code": "TEST123",
            "created_by_user_id": user["id"],
        })
        assert resp.status_code == 422
        assert resp.json()["errors"] == ["Family name must be at least 2 characters"]

    async def test_duplicate_code(self, client):
        user = await _create_user(client)
        await _create_family(client, user["id"])
        resp = await client.post("/api/v1/families", json={
            "name": "Other Family",
            "code": "TEST123",
            "created_by_user_id": user["id"],
        })
        assert resp.status_code == 409


class TestLookup:
    async def test_lookup_by_code(self, client):
        user = await _create_user(client)
        family = await _create_family(client, user["id"])

        resp = await client.get("/api/v1/families/lookup", params={"code": "TEST123"})
        assert resp.status_code == 200
        assert resp.json()["id"] == family["id"]

    async def test_lookup_empty_code(self, client):
        resp = await client.get("/api/v1/families/lookup", params={"code": ""})
        assert resp.status_code == 422
        assert "cannot be empty" in resp.json()["detail"]

    async def test_lookup_unknown_code(self, client):
        resp = await client.get("/api/v1/families/lookup", params={"code": "NOPE999"})
        assert resp.status_code == 404

    async def test_get_unknown_family(self, client):
        resp = await client.get(f"/api/v1/families/{uuid.uuid4()}")
        assert resp.status_code == 404


class TestUpdateAndDelete:
    async def test_update_name(self, client):
        user = await _create_user(client)
        family = await _create_family(client, user["id"])

        resp = await client.put(f"/api/v1/families/{family['id']}", json={"name": "Neuer Name"})
        assert resp.status_code == 200
        assert resp.json()["name"] == "Neuer Name"
        assert resp.json()["code"] == "TEST123"

    async def test_delete_family_removes_members(self, client):
        user = await _create_user(client)
        family = await _create_family(client, user["id"])
        resp = await client.post("/api/v1/memberships", json={
            "family_id": family["id"],
            "user_id": user["id"],
            "role": "parent_admin",
        })
        assert resp.status_code == 201

        resp = await client.delete(f"/api/v1/families/{family['id']}")
        assert resp.status_code == 204

        assert (await client.get(f"/api/v1/families/{family['id']}")).status_code == 404
        resp = await client.get(f"/api/v1/users/{user['id']}/memberships")
        assert resp.status_code == 200
        assert resp.json() == []


class TestUsers:
    async def test_lookup_by_hash(self, client):
        user = await _create_user(client, apple_hash="test_hash_0123456789")
        resp = await client.get(
            "/api/v1/users/lookup", params={"apple_user_id_hash": "test_hash_0123456789"},
        )
        assert resp.status_code == 200
        assert resp.json()["id"] == user["id"]
        assert "apple_user_id_hash" not in resp.json()

    async def test_invalid_user(self, client):
        resp = await client.post("/api/v1/users", json={
            "display_name": "",
            "apple_user_id_hash": "short",
        })
        assert resp.status_code == 422

    async def test_update_display_name(self, client):
        user = await _create_user(client)
        resp = await client.put(f"/api/v1/users/{user['id']}", json={"display_name": "Renamed"})
        assert resp.status_code == 200
        assert resp.json()["display_name"] == "Renamed"

    async def test_delete_user_orphans_membership(self, client):
        user = await _create_user(client)
        family = await _create_family(client, user["id"])
        membership = (await client.post("/api/v1/memberships", json={
            "family_id": family["id"],
            "user_id": user["id"],
            "role": "adult",
        })).json()

        resp = await client.delete(f"/api/v1/users/{user['id']}")
        assert resp.status_code == 204

        resp = await client.get(f"/api/v1/memberships/{membership['id']}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["user_id"] is None
        assert data["is_valid"] is False
        assert data["user_display_name"] == "Unknown User"
