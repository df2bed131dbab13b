"""Tests for the /users routes: upsert by email, list, single lookup."""

from datetime import datetime, timedelta, timezone

import pytest
from bson.errors import InvalidDocument


EMAIL = "ann@homehero.io"


async def test_put_then_get_returns_fields_and_last_login(client):
    before = datetime.now(timezone.utc) - timedelta(seconds=1)
    r = await client.put(f"/users/{EMAIL}", json={"name": "Ann", "photoURL": "https://img/ann.png", "role": "customer"})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "User saved successfully"
    assert body["data"]["upsertedCount"] == 1
    assert body["data"]["upsertedId"] is not None

    r = await client.get(f"/users/{EMAIL}")
    assert r.status_code == 200
    user = r.json()["data"]
    assert user["email"] == EMAIL
    assert user["name"] == "Ann"
    assert user["role"] == "customer"
    assert datetime.fromisoformat(user["lastLogin"]) >= before


async def test_repeated_put_keeps_one_document_per_email(client, mongo_db):
    await client.put(f"/users/{EMAIL}", json={"name": "Ann"})
    r = await client.put(f"/users/{EMAIL}", json={"name": "Ann B."})
    assert r.json()["data"]["matchedCount"] == 1
    assert r.json()["data"]["upsertedId"] is None

    assert await mongo_db["users"].count_documents({"email": EMAIL}) == 1
    user = await mongo_db["users"].find_one({"email": EMAIL})
    assert user["name"] == "Ann B."


async def test_put_keeps_path_email_as_key(client, mongo_db):
    await client.put(f"/users/{EMAIL}", json={"email": "other@homehero.io", "name": "Ann"})
    assert await mongo_db["users"].count_documents({"email": EMAIL}) == 1
    assert await mongo_db["users"].count_documents({"email": "other@homehero.io"}) == 0


async def test_put_with_empty_body_still_stamps_last_login(client, mongo_db):
    r = await client.put(f"/users/{EMAIL}", json={})
    assert r.status_code == 200
    user = await mongo_db["users"].find_one({"email": EMAIL})
    assert user["lastLogin"] is not None


async def test_list_users(client):
    await client.put("/users/a@homehero.io", json={"name": "A"})
    await client.put("/users/b@homehero.io", json={"name": "B"})
    r = await client.get("/users")
    assert r.status_code == 200
    emails = sorted(u["email"] for u in r.json()["data"])
    assert emails == ["a@homehero.io", "b@homehero.io"]
    assert all(isinstance(u["_id"], str) for u in r.json()["data"])


async def test_get_unknown_user_is_404(client):
    r = await client.get("/users/ghost@homehero.io")
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "User not found"}


async def test_storage_failures_map_to_500(broken_client):
    r = await broken_client.put(f"/users/{EMAIL}", json={"name": "Ann"})
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Failed to save user"}

    r = await broken_client.get("/users")
    assert r.status_code == 500
    assert r.json()["message"] == "Failed to fetch users"

    r = await broken_client.get(f"/users/{EMAIL}")
    assert r.status_code == 500
    assert r.json()["message"] == "Failed to get user"


async def test_put_without_body_upserts_with_last_login(client, mongo_db):
    r = await client.put(f"/users/{EMAIL}")
    assert r.status_code == 200
    assert r.json()["data"]["upsertedCount"] == 1
    user = await mongo_db["users"].find_one({"email": EMAIL})
    assert user["lastLogin"] is not None


@pytest.mark.parametrize(
    "broken_client",
    [
        OverflowError("MongoDB can only handle up to 8-byte ints"),
        InvalidDocument("cannot encode object"),
    ],
    indirect=True,
)
async def test_encoding_failures_report_operation_message(broken_client):
    r = await broken_client.put(f"/users/{EMAIL}", json={"n": 100000000000000000000000})
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Failed to save user"}
