import jwt
import pytest
from fastapi.testclient import TestClient

from memory_match.config import get_config
from memory_match.directory import InMemoryGameDirectory
from memory_match.game import Card, Game
from memory_match.main import create_app
from memory_match.service import GameService
from memory_match.storage import LocalImageStore

JWT_SECRET = "memory-match-test-secret-0123456789abcdef"


@pytest.fixture
def make_token():
    def _make(sub, secret=JWT_SECRET, alg="HS256", **claims):
        return jwt.encode({"sub": sub, **claims}, secret, algorithm=alg)

    return _make


@pytest.fixture
def make_game():
    """Партия с предсказуемой колодой: карты a1,a2 (пара A), b1,b2 (пара B), ..."""

    def _make(pairs="AB", order=None, **kwargs):
        cards = []
        for key in pairs:
            low = key.lower()
            cards.append(Card(id=f"{low}1", image_url=f"{low}.png", pair_id=key))
            cards.append(Card(id=f"{low}2", image_url=f"{low}.png", pair_id=key))
        if order:
            by_id = {c.id: c for c in cards}
            cards = [by_id[i] for i in order]
        return Game(cards=cards, **kwargs)

    return _make


@pytest.fixture
def config(monkeypatch, tmp_path):
    monkeypatch.setenv("AUTH_JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("DATABASE_PATH", "")
    monkeypatch.delenv("DEBUG", raising=False)
    get_config.cache_clear()
    yield get_config()
    get_config.cache_clear()


@pytest.fixture
def directory():
    return InMemoryGameDirectory()


@pytest.fixture
def service(directory):
    return GameService(directory)


@pytest.fixture
def client(config, directory):
    app = create_app(config, directory=directory, image_store=LocalImageStore(config.upload_dir))
    with TestClient(app) as c:
        yield c
