"""
Tests for the /api/discussions routes.
"""
from datetime import timedelta

from bson import ObjectId

from core.auth.jwt_handler import create_access_token
from factories import QUESTION_ID, auth_headers

BASE = f"/api/discussions/question/{QUESTION_ID}"


async def _post(client, user, content="hello", parent=None):
    body = {"content": content}
    if parent:
        body["parentMessageId"] = parent
    return await client.post(f"{BASE}/message", json=body, headers=auth_headers(user))


# ================== Auth ==================

async def test_missing_token_is_401(client):
    response = await client.get(BASE)

    assert response.status_code == 401
    assert response.json()["detail"] == "No authorization header provided"


async def test_malformed_header_is_401(client):
    response = await client.get(BASE, headers={"Authorization": "Token abc"})

    assert response.status_code == 401
    assert "Bearer" in response.json()["detail"]


async def test_bad_signature_is_401(client):
    response = await client.get(BASE, headers={"Authorization": "Bearer not.a.jwt"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


async def test_expired_token_is_401(client, users):
    token = create_access_token(users["alice"].id, "user", expires_in=timedelta(minutes=-30))

    response = await client.get(BASE, headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Token has expired"


# ================== Reading & posting ==================

async def test_get_empty_discussion(client, users):
    response = await client.get(BASE, headers=auth_headers(users["alice"]))

    assert response.status_code == 200
    body = response.json()
    assert body["_id"] is None
    assert body["itemType"] == "question"
    assert body["itemId"] == QUESTION_ID
    assert body["messages"] == []


async def test_invalid_item_type_is_400(client, users):
    response = await client.get(f"/api/discussions/video/{QUESTION_ID}", headers=auth_headers(users["alice"]))

    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid item type", "code": "VALIDATION_ERROR"}


async def test_post_and_reply(client, users):
    first = await _post(client, users["alice"], "How is goodwill amortised?")
    assert first.status_code == 200
    body = first.json()
    root = body["messages"][0]
    assert root["author"] == {"id": users["alice"].id, "displayName": "Alice Sharma", "role": "user"}
    assert root["parentMessageId"] is None
    assert root["likeCount"] == 0

    second = await _post(client, users["bob"], "@Alice it is not", parent=root["id"])
    assert second.status_code == 200
    messages = second.json()["messages"]
    assert len(messages) == 2
    assert messages[1]["parentMessageId"] == root["id"]
    assert second.json()["_id"] == body["_id"]


async def test_empty_content_is_400(client, users):
    response = await _post(client, users["alice"], "   ")

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


async def test_missing_body_field_is_422(client, users):
    response = await client.post(f"{BASE}/message", json={}, headers=auth_headers(users["alice"]))

    assert response.status_code == 422


async def test_unknown_parent_reports_invalid_parent(client, users):
    await _post(client, users["alice"], "root")

    response = await _post(client, users["bob"], "reply", parent=str(ObjectId()))

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_PARENT"


# ================== Edit / delete / like ==================

async def _seed(client, users):
    body = (await _post(client, users["alice"], "root")).json()
    root_id = body["messages"][0]["id"]
    body = (await _post(client, users["bob"], "reply", parent=root_id)).json()
    reply_id = next(m["id"] for m in body["messages"] if m["id"] != root_id)
    return body["_id"], root_id, reply_id


async def test_edit_by_author_and_forbidden_for_others(client, users):
    discussion_id, root_id, _ = await _seed(client, users)
    url = f"/api/discussions/{discussion_id}/message/{root_id}"

    ok = await client.put(url, json={"content": "root, clarified"}, headers=auth_headers(users["alice"]))
    assert ok.status_code == 200
    edited = next(m for m in ok.json()["messages"] if m["id"] == root_id)
    assert edited["content"] == "root, clarified"
    assert edited["edited"] is True
    assert edited["editedAt"] is not None

    denied = await client.put(url, json={"content": "mine now"}, headers=auth_headers(users["bob"]))
    assert denied.status_code == 403
    assert denied.json()["code"] == "FORBIDDEN"

    admin = await client.put(url, json={"content": "moderated"}, headers=auth_headers(users["root"]))
    assert admin.status_code == 403


async def test_delete_respects_cascade_query(client, users):
    discussion_id, root_id, reply_id = await _seed(client, users)
    url = f"/api/discussions/{discussion_id}/message/{root_id}"

    plain = await client.delete(url, headers=auth_headers(users["alice"]))
    assert plain.status_code == 200
    states = {m["id"]: m["deleted"] for m in plain.json()["messages"]}
    assert states == {root_id: True, reply_id: False}

    cascaded = await client.delete(url, params={"cascade": "true"}, headers=auth_headers(users["root"]))
    assert cascaded.status_code == 200
    assert all(m["deleted"] for m in cascaded.json()["messages"])
    assert all(m["content"] == "" for m in cascaded.json()["messages"])


async def test_delete_by_other_user_is_403(client, users):
    discussion_id, root_id, _ = await _seed(client, users)

    response = await client.delete(
        f"/api/discussions/{discussion_id}/message/{root_id}", headers=auth_headers(users["bob"])
    )

    assert response.status_code == 403


async def test_like_toggle_and_deleted_like_is_404(client, users):
    discussion_id, root_id, reply_id = await _seed(client, users)
    like_url = f"/api/discussions/{discussion_id}/message/{reply_id}/like"

    liked = await client.post(like_url, headers=auth_headers(users["alice"]))
    reply = next(m for m in liked.json()["messages"] if m["id"] == reply_id)
    assert reply["likes"] == [users["alice"].id]
    assert reply["likeCount"] == 1

    await client.delete(f"/api/discussions/{discussion_id}/message/{reply_id}", headers=auth_headers(users["bob"]))
    gone = await client.post(like_url, headers=auth_headers(users["alice"]))
    assert gone.status_code == 404
    assert gone.json()["code"] == "NOT_FOUND"


async def test_unknown_message_is_404(client, users):
    discussion_id, _, _ = await _seed(client, users)

    response = await client.post(
        f"/api/discussions/{discussion_id}/message/{ObjectId()}/like", headers=auth_headers(users["alice"])
    )

    assert response.status_code == 404


async def test_permissions_endpoint(client, users):
    discussion_id, root_id, _ = await _seed(client, users)
    url = f"/api/discussions/{discussion_id}/message/{root_id}/permissions"

    mine = await client.get(url, headers=auth_headers(users["alice"]))
    admin = await client.get(url, headers=auth_headers(users["root"]))

    assert mine.json() == {"owned": True, "canEdit": True, "canDelete": True}
    assert admin.json() == {"owned": False, "canEdit": False, "canDelete": True}


# ================== Listing ==================

async def test_user_me_lists_participated_discussions(client, users):
    await _seed(client, users)

    response = await client.get("/api/discussions/user/me", headers=auth_headers(users["bob"]))

    assert response.status_code == 200
    items = response.json()
    assert len(items) == 1
    assert items[0]["itemId"] == QUESTION_ID
    assert items[0]["messageCount"] == 2
    assert items[0]["participantCount"] == 2

    nobody = await client.get("/api/discussions/user/me", headers=auth_headers(users["root"]))
    assert nobody.json() == []


async def test_user_me_limit_is_bounded(client, users):
    response = await client.get(
        "/api/discussions/user/me", params={"limit": 500}, headers=auth_headers(users["alice"])
    )

    assert response.status_code == 422
