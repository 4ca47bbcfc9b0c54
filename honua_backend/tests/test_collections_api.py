import pytest
from sqlalchemy import select

from models.bookmarks import Bookmark

pytestmark = pytest.mark.api


@pytest.fixture
def create_collection(client):
    async def _create(headers, name, **extra):
        return await client.post("/api/collections", headers=headers, json={"name": name, **extra})
    return _create


async def _post_id(client, headers, content="worth keeping") -> int:
    return (await client.post("/api/posts", headers=headers, json={"content": content})).json()["id"]


async def test_create_and_list_collections(client, make_user, create_collection):
    headers = await make_user("saver-1")
    created = await create_collection(headers, "  Recipes  ", description="plant based")
    assert created.status_code == 201
    body = created.json()
    assert body["name"] == "Recipes"
    assert body["color"] == "#10B981"
    assert body["bookmark_count"] == 0

    await create_collection(headers, "Travel", color="#123ABC")
    listed = (await client.get("/api/collections", headers=headers)).json()["collections"]
    assert [c["name"] for c in listed] == ["Travel", "Recipes"]


async def test_duplicate_name_conflicts_per_user(client, make_user, create_collection):
    first = await make_user("saver-1")
    second = await make_user("saver-2")
    assert (await create_collection(first, "Ideas")).status_code == 201
    dup = await create_collection(first, "Ideas")
    assert dup.status_code == 409
    assert dup.json() == {"error": "A collection with this name already exists"}
    assert (await create_collection(second, "Ideas")).status_code == 201


async def test_invalid_color_and_blank_name(client, make_user, create_collection):
    headers = await make_user("saver-1")
    assert (await create_collection(headers, "Bad", color="green")).status_code == 400
    assert (await create_collection(headers, "   ")).status_code == 400


async def test_bookmark_into_collection_and_count(client, make_user, create_collection):
    headers = await make_user("saver-1")
    collection = (await create_collection(headers, "Ocean")).json()
    post_id = await _post_id(client, headers)

    resp = await client.post(f"/api/posts/{post_id}/bookmark", headers=headers, json={"collection_id": collection["id"]})
    assert resp.json()["collection_id"] == collection["id"]

    listed = (await client.get("/api/collections", headers=headers)).json()["collections"]
    assert listed[0]["bookmark_count"] == 1
    in_collection = (await client.get("/api/bookmarks", headers=headers, params={"collection_id": collection["id"]})).json()
    assert [b["post"]["id"] for b in in_collection["bookmarks"]] == [post_id]


async def test_bookmark_into_foreign_collection_is_not_found(client, make_user, create_collection):
    owner = await make_user("owner-1")
    other = await make_user("other-1")
    collection = (await create_collection(owner, "Private")).json()
    post_id = await _post_id(client, owner)
    resp = await client.post(f"/api/posts/{post_id}/bookmark", headers=other, json={"collection_id": collection["id"]})
    assert resp.status_code == 404
    rename = await client.put(f"/api/collections/{collection['id']}", headers=other, json={"name": "Mine now"})
    assert rename.status_code == 404
    assert (await client.delete(f"/api/collections/{collection['id']}", headers=other)).status_code == 404


async def test_deleting_collection_keeps_bookmarks(client, make_user, create_collection, fetch):
    headers = await make_user("saver-1")
    collection = (await create_collection(headers, "Temporary")).json()
    post_id = await _post_id(client, headers)
    await client.post(f"/api/posts/{post_id}/bookmark", headers=headers, json={"collection_id": collection["id"]})

    assert (await client.delete(f"/api/collections/{collection['id']}", headers=headers)).json() == {"success": True}
    rows = await fetch(select(Bookmark))
    assert [(b.post_id, b.collection_id) for b in rows] == [(post_id, None)]
    assert (await client.get("/api/collections", headers=headers)).json()["collections"] == []


async def test_clear_collections(client, make_user, create_collection, fetch):
    headers = await make_user("saver-1")
    a = (await create_collection(headers, "A")).json()
    await create_collection(headers, "B")
    post_id = await _post_id(client, headers)
    await client.post(f"/api/posts/{post_id}/bookmark", headers=headers, json={"collection_id": a["id"]})

    resp = await client.delete("/api/collections", headers=headers)
    assert resp.json() == {"success": True, "deleted": 2}
    assert [b.collection_id for b in await fetch(select(Bookmark))] == [None]


async def test_update_collection(client, make_user, create_collection):
    headers = await make_user("saver-1")
    collection = (await create_collection(headers, "Old")).json()
    await create_collection(headers, "Taken")

    resp = await client.put(f"/api/collections/{collection['id']}", headers=headers, json={"name": "New", "color": "#000000"})
    assert resp.json()["name"] == "New"
    assert resp.json()["color"] == "#000000"
    clash = await client.put(f"/api/collections/{collection['id']}", headers=headers, json={"name": "Taken"})
    assert clash.status_code == 409


async def test_move_bookmark_between_collections(client, make_user, create_collection):
    headers = await make_user("saver-1")
    target = (await create_collection(headers, "Target")).json()
    post_id = await _post_id(client, headers)
    bookmark_id = (await client.post(f"/api/posts/{post_id}/bookmark", headers=headers)).json()["bookmark_id"]

    moved = await client.put(f"/api/bookmarks/{bookmark_id}/move", headers=headers, json={"collection_id": target["id"]})
    assert moved.json()["collection_id"] == target["id"]
    back = await client.put(f"/api/bookmarks/{bookmark_id}/move", headers=headers, json={"collection_id": None})
    assert back.json()["collection_id"] is None

    other = await make_user("other-1")
    stolen = await client.put(f"/api/bookmarks/{bookmark_id}/move", headers=other, json={"collection_id": None})
    assert stolen.status_code == 404


async def test_bookmarks_of_deleted_posts_are_hidden(client, make_user):
    headers = await make_user("saver-1")
    post_id = await _post_id(client, headers)
    await client.post(f"/api/posts/{post_id}/bookmark", headers=headers)
    await client.delete(f"/api/posts/{post_id}", headers=headers)
    assert (await client.get("/api/bookmarks", headers=headers)).json()["bookmarks"] == []
