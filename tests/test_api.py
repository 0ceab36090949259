from collections import defaultdict

from fastapi.testclient import TestClient

from memory_match.errors import PersistenceError
from memory_match.main import create_app
from memory_match.storage import LocalImageStore


def _pairs(cards):
    by_pair = defaultdict(list)
    for c in cards:
        by_pair[c["pairId"]].append(c["id"])
    return list(by_pair.values())


def _auth(make_token, sub):
    return {"Authorization": f"Bearer {make_token(sub)}"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_and_play_to_completion(client):
    resp = client.post("/api/game/create", json={"images": ["a.png", "b.png"]})
    assert resp.status_code == 201
    body = resp.json()
    game_id = body["gameId"]
    game = body["game"]
    assert body["success"] is True
    assert len(game["cards"]) == 4
    assert (game["moves"], game["isComplete"], game["startTime"]) == (0, False, None)
    assert game["status"] == "not_started"

    (x1, x2), (y1, y2) = _pairs(game["cards"])

    r = client.post(f"/api/game/{game_id}/card/{x1}/flip").json()
    assert (r["pendingCount"], r["isMatch"]) == (1, False)
    assert r["card"]["isFlipped"] is True

    r = client.post(f"/api/game/{game_id}/card/{x2}/flip").json()
    assert (r["pendingCount"], r["isMatch"], r["moves"], r["isComplete"]) == (2, True, 1, False)
    assert (r["matchedPairs"], r["totalPairs"]) == (1, 2)

    r = client.post(f"/api/game/{game_id}/card/{y1}/flip").json()
    assert r["pendingCount"] == 1

    r = client.post(f"/api/game/{game_id}/card/{y2}/flip").json()
    assert (r["pendingCount"], r["isMatch"], r["moves"], r["isComplete"]) == (2, True, 2, True)

    game = client.get(f"/api/game/{game_id}").json()["game"]
    assert game["isComplete"] is True
    assert game["endTime"] is not None
    assert game["status"] == "complete"
    assert all(c["isMatched"] for c in game["cards"])


def test_create_rejects_empty_images(client):
    resp = client.post("/api/game/create", json={"images": []})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "No images provided for the game"}
    assert client.post("/api/game/create", json={}).status_code == 400


def test_flip_errors(client):
    game = client.post("/api/game/create", json={"images": ["a.png", "b.png"]}).json()["game"]
    game_id = game["id"]
    (x1, x2), (y1, y2) = _pairs(game["cards"])

    resp = client.post(f"/api/game/{game_id}/card/nope/flip")
    assert resp.status_code == 404
    assert resp.json()["success"] is False
    assert client.get(f"/api/game/{game_id}").json()["game"]["startTime"] is None

    assert client.post(f"/api/game/missing/card/{x1}/flip").status_code == 404

    client.post(f"/api/game/{game_id}/card/{x1}/flip")
    client.post(f"/api/game/{game_id}/card/{y1}/flip")
    resp = client.post(f"/api/game/{game_id}/card/{x2}/flip")
    assert resp.status_code == 409

    client.post(f"/api/game/{game_id}/card/{x1}/flip")
    client.post(f"/api/game/{game_id}/card/{y1}/flip")
    client.post(f"/api/game/{game_id}/card/{x1}/flip")
    client.post(f"/api/game/{game_id}/card/{x2}/flip")
    resp = client.post(f"/api/game/{game_id}/card/{x1}/flip")
    assert resp.status_code == 409
    assert "matched" in resp.json()["message"]


def test_reset_reshuffles_and_clears(client):
    images = [f"{i}.png" for i in range(8)]
    game = client.post("/api/game/create", json={"images": images}).json()["game"]
    game_id = game["id"]
    first, second = _pairs(game["cards"])[0]
    client.post(f"/api/game/{game_id}/card/{first}/flip")
    client.post(f"/api/game/{game_id}/card/{second}/flip")

    orders = set()
    for _ in range(3):
        resp = client.post(f"/api/game/{game_id}/reset")
        assert resp.status_code == 200
        orders.add(tuple(c["id"] for c in resp.json()["game"]["cards"]))

    fetched = client.get(f"/api/game/{game_id}").json()["game"]
    assert fetched["moves"] == 0
    assert fetched["startTime"] is None and fetched["endTime"] is None
    assert fetched["isComplete"] is False
    assert not any(c["isFlipped"] or c["isMatched"] for c in fetched["cards"])
    assert tuple(c["id"] for c in fetched["cards"]) in orders
    # 16 карт: три одинаковых перемешивания подряд практически невозможны
    assert len(orders | {tuple(c["id"] for c in game["cards"])}) > 1


def test_get_unknown_game(client):
    resp = client.get("/api/game/does-not-exist")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert "not found" in body["message"]


def test_owned_games_listing_and_delete(client, make_token):
    alice = _auth(make_token, "alice")
    bob = _auth(make_token, "bob")
    ids = [
        client.post("/api/game/create", json={"images": ["a.png"]}, headers=alice).json()["gameId"]
        for _ in range(3)
    ]
    client.post("/api/game/create", json={"images": ["a.png"]}, headers=bob)
    anon = client.post("/api/game/create", json={"images": ["a.png"]}).json()["game"]
    assert anon["userId"] is None

    resp = client.get("/api/game/user/games", headers=alice)
    assert resp.status_code == 200
    listed = [g["id"] for g in resp.json()["games"]]
    assert sorted(listed) == sorted(ids)
    assert "cards" not in resp.json()["games"][0]
    assert len(client.get("/api/game/user/games?limit=2", headers=alice).json()["games"]) == 2

    assert client.get("/api/game/user/games").status_code == 401
    assert client.delete(f"/api/game/{ids[0]}").status_code == 401
    assert client.delete(f"/api/game/{ids[0]}", headers=bob).status_code == 404

    resp = client.delete(f"/api/game/{ids[0]}", headers=alice)
    assert resp.status_code == 200 and resp.json()["success"] is True
    assert client.get(f"/api/game/{ids[0]}").status_code == 404
    assert len(client.get("/api/game/user/games", headers=alice).json()["games"]) == 2


def test_list_rejects_bad_limit(client, make_token):
    resp = client.get("/api/game/user/games?limit=0", headers=_auth(make_token, "alice"))
    assert resp.status_code == 400


def test_upload_creates_game_from_stored_images(client, config):
    files = [
        ("images", ("cat.png", b"\x89PNG fake cat", "image/png")),
        ("images", ("dog.JPG", b"fake dog", "image/jpeg")),
    ]
    resp = client.post("/api/game/upload", files=files)
    assert resp.status_code == 201
    body = resp.json()
    assert body["imageCount"] == 2
    cards = body["game"]["cards"]
    assert len(cards) == 4

    urls = sorted({c["imageUrl"] for c in cards})
    assert all(u.startswith("/uploads/") for u in urls)
    assert sorted(p.suffix for p in config.upload_dir.iterdir()) == [".jpg", ".png"]
    served = {client.get(u).content for u in urls}
    assert served == {b"\x89PNG fake cat", b"fake dog"}


def test_upload_rejects_non_images(client):
    files = [("images", ("notes.txt", b"hello", "text/plain"))]
    resp = client.post("/api/game/upload", files=files)
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def _stored_files(config):
    if not config.upload_dir.exists():
        return []
    return list(config.upload_dir.iterdir())


def test_upload_checks_every_name_before_writing(client, config):
    files = [
        ("images", ("cat.png", b"cat", "image/png")),
        ("images", ("dog.png", b"dog", "image/png")),
        ("images", ("run.exe", b"MZ", "application/octet-stream")),
    ]
    resp = client.post("/api/game/upload", files=files)
    assert resp.status_code == 400
    assert _stored_files(config) == []


def test_upload_rejects_too_many_images(client, config):
    files = [("images", (f"img{i}.png", b"x", "image/png")) for i in range(51)]
    resp = client.post("/api/game/upload", files=files)
    assert resp.status_code == 400
    assert _stored_files(config) == []


def test_upload_removes_stored_files_after_a_bad_one(client, config):
    files = [
        ("images", ("cat.png", b"cat", "image/png")),
        ("images", ("empty.png", b"", "image/png")),
    ]
    resp = client.post("/api/game/upload", files=files)
    assert resp.status_code == 400
    assert _stored_files(config) == []


def test_upload_rejects_oversized_file(config, directory):
    store = LocalImageStore(config.upload_dir, max_bytes=16)
    app = create_app(config, directory=directory, image_store=store)
    files = [
        ("images", ("small.png", b"ok", "image/png")),
        ("images", ("big.png", b"x" * 1024, "image/png")),
    ]
    with TestClient(app) as c:
        resp = c.post("/api/game/upload", files=files)
    assert resp.status_code == 400
    assert "too large" in resp.json()["message"]
    assert _stored_files(config) == []


def test_upload_removes_files_when_game_is_not_saved(client, config, monkeypatch):
    def fail(*args, **kwargs):
        raise PersistenceError()

    monkeypatch.setattr(client.app.state.service, "create_game", fail)
    files = [
        ("images", ("cat.png", b"cat", "image/png")),
        ("images", ("dog.png", b"dog", "image/png")),
    ]
    resp = client.post("/api/game/upload", files=files)
    assert resp.status_code == 503
    assert _stored_files(config) == []
