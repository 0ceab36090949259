"""
Хранилище партий (GameDirectory): строки games/cards.
InMemoryGameDirectory — для тестов и запуска без БД,
SqliteGameDirectory — реляционное хранилище в файле.
Обе реализации проверяют версию партии при каждой записи (оптимистичная блокировка).
"""
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from threading import Lock
from typing import Any

from .constants import USER_GAMES_LIMIT
from .errors import CardNotFoundError, ConflictError, GameNotFoundError, PersistenceError
from .game import Card, Game, utcnow

logger = logging.getLogger(__name__)

Row = dict[str, Any]


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _position(game: Game, card: Card) -> int:
    for i, c in enumerate(game.cards):
        if c.id == card.id:
            return i
    raise CardNotFoundError(f"Card {card.id} not found in game {game.id}")


def game_row(game: Game) -> Row:
    return {
        "id": game.id,
        "is_complete": game.is_complete,
        "moves": game.moves,
        "start_time": _ts(game.start_time),
        "end_time": _ts(game.end_time),
        "user_id": game.user_id,
        "created_at": _ts(game.created_at),
        "updated_at": _ts(utcnow()),
        "version": game.version,
    }


def card_row(card: Card, game_id: str, position: int) -> Row:
    return {
        "id": card.id,
        "game_id": game_id,
        "image_url": card.image_url,
        "is_flipped": card.is_flipped,
        "is_matched": card.is_matched,
        "pair_id": card.pair_id,
        "position": position,
    }


def game_from_rows(row: Row, card_rows: list[Row]) -> Game:
    cards = [
        Card(
            id=r["id"],
            image_url=r["image_url"],
            pair_id=r["pair_id"],
            is_flipped=bool(r["is_flipped"]),
            is_matched=bool(r["is_matched"]),
        )
        for r in sorted(card_rows, key=lambda r: r["position"])
    ]
    return Game(
        cards=cards,
        id=row["id"],
        moves=row["moves"],
        start_time=_parse_ts(row["start_time"]),
        end_time=_parse_ts(row["end_time"]),
        is_complete=bool(row["is_complete"]),
        user_id=row["user_id"],
        created_at=_parse_ts(row["created_at"]),
        version=row["version"],
    )


class GameDirectory(ABC):
    """
    Доступ к партиям по id. update_card / update_game бросают ConflictError,
    если версия партии в хранилище не совпадает с game.version,
    и увеличивают game.version после успешной записи.
    """

    def init_schema(self) -> None:
        """Подготовить хранилище (создать таблицы)."""

    @abstractmethod
    def save(self, game: Game) -> None:
        """
        Записать партию и все её карты одной транзакцией.
        Уже сохранённая партия перезаписывается только при совпадении версии.
        """

    @abstractmethod
    def get(self, game_id: str) -> Game | None:
        ...

    @abstractmethod
    def list_by_owner(self, owner_id: str, limit: int = USER_GAMES_LIMIT) -> list[Game]:
        ...

    @abstractmethod
    def update_card(self, card: Card, game: Game) -> None:
        ...

    @abstractmethod
    def update_game(self, game: Game) -> None:
        ...

    @abstractmethod
    def delete(self, game_id: str, owner_id: str) -> bool:
        """Удалить партию владельца. True, если строка была удалена."""


class InMemoryGameDirectory(GameDirectory):
    """
    Те же строки, что и в БД, но в словарях процесса.
    Данные теряются при перезапуске.
    """

    def __init__(self) -> None:
        self._games: dict[str, Row] = {}
        self._cards: dict[str, dict[str, Row]] = {}
        self._lock = Lock()

    def save(self, game: Game) -> None:
        with self._lock:
            existed = game.id in self._games
            if existed:
                self._claim(game)
            row = game_row(game)
            row["version"] = game.version + 1 if existed else game.version
            self._games[game.id] = row
            self._cards[game.id] = {
                c.id: card_row(c, game.id, i) for i, c in enumerate(game.cards)
            }
        if existed:
            game.version += 1

    def get(self, game_id: str) -> Game | None:
        with self._lock:
            row = self._games.get(game_id)
            if row is None:
                return None
            return game_from_rows(row, list(self._cards[game_id].values()))

    def list_by_owner(self, owner_id: str, limit: int = USER_GAMES_LIMIT) -> list[Game]:
        with self._lock:
            rows = [r for r in self._games.values() if r["user_id"] == owner_id]
            rows.sort(key=lambda r: r["created_at"], reverse=True)
            return [
                game_from_rows(r, list(self._cards[r["id"]].values()))
                for r in rows[:limit]
            ]

    def _claim(self, game: Game) -> Row:
        row = self._games.get(game.id)
        if row is None:
            raise GameNotFoundError(f"Game {game.id} not found")
        if row["version"] != game.version:
            raise ConflictError(
                f"Game {game.id} version {game.version} is stale (stored {row['version']})"
            )
        row["version"] += 1
        row["updated_at"] = _ts(utcnow())
        return row

    def update_card(self, card: Card, game: Game) -> None:
        position = _position(game, card)
        with self._lock:
            stored = self._cards.get(game.id, {}).get(card.id)
            if stored is None:
                raise CardNotFoundError(f"Card {card.id} not found in game {game.id}")
            self._claim(game)
            stored.update(
                is_flipped=card.is_flipped,
                is_matched=card.is_matched,
                position=position,
            )
        game.version += 1

    def update_game(self, game: Game) -> None:
        with self._lock:
            row = self._claim(game)
            row.update(
                is_complete=game.is_complete,
                moves=game.moves,
                start_time=_ts(game.start_time),
                end_time=_ts(game.end_time),
            )
        game.version += 1

    def delete(self, game_id: str, owner_id: str) -> bool:
        with self._lock:
            row = self._games.get(game_id)
            if row is None or row["user_id"] != owner_id:
                return False
            del self._games[game_id]
            self._cards.pop(game_id, None)
            return True


_SCHEMA = """
CREATE TABLE IF NOT EXISTS games (
    id TEXT PRIMARY KEY,
    is_complete INTEGER NOT NULL DEFAULT 0,
    moves INTEGER NOT NULL DEFAULT 0,
    start_time TEXT,
    end_time TEXT,
    user_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS cards (
    id TEXT NOT NULL,
    game_id TEXT NOT NULL REFERENCES games(id) ON DELETE CASCADE,
    image_url TEXT NOT NULL,
    is_flipped INTEGER NOT NULL DEFAULT 0,
    is_matched INTEGER NOT NULL DEFAULT 0,
    pair_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    PRIMARY KEY (game_id, id)
);
CREATE INDEX IF NOT EXISTS idx_games_user_id ON games(user_id, created_at);
"""


class SqliteGameDirectory(GameDirectory):
    """Партии в SQLite. Ошибки драйвера оборачиваются в PersistenceError."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._lock = Lock()
        try:
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
        except sqlite3.Error as e:
            logger.exception("DB: cannot open %s", db_path)
            raise PersistenceError(f"Cannot open database: {e}") from e
        self.conn.row_factory = sqlite3.Row

    def close(self) -> None:
        self.conn.close()

    def _run(self, action: str, fn):
        """Выполнить fn(conn) в транзакции под блокировкой соединения."""
        with self._lock:
            try:
                with self.conn:
                    return fn(self.conn)
            except sqlite3.Error as e:
                logger.exception("DB: %s failed", action)
                raise PersistenceError(f"Error during {action}: {e}") from e

    def init_schema(self) -> None:
        # executescript сам управляет транзакцией
        with self._lock:
            try:
                self.conn.executescript(_SCHEMA)
            except sqlite3.Error as e:
                logger.exception("DB: schema init failed")
                raise PersistenceError(f"Error initialising database: {e}") from e
        logger.info("DB: schema ready at %s", self.db_path)

    def save(self, game: Game) -> None:
        row = game_row(game)
        cards = [card_row(c, game.id, i) for i, c in enumerate(game.cards)]

        def _save(conn: sqlite3.Connection) -> bool:
            existed = conn.execute("SELECT 1 FROM games WHERE id = ?", (game.id,)).fetchone()
            if existed:
                self._claim(conn, game)
                conn.execute(
                    """
                    UPDATE games SET is_complete = :is_complete, moves = :moves,
                        start_time = :start_time, end_time = :end_time, user_id = :user_id
                    WHERE id = :id
                    """,
                    row,
                )
            else:
                conn.execute(
                    """
                    INSERT INTO games (id, is_complete, moves, start_time, end_time,
                                       user_id, created_at, updated_at, version)
                    VALUES (:id, :is_complete, :moves, :start_time, :end_time,
                            :user_id, :created_at, :updated_at, :version)
                    """,
                    row,
                )
            conn.execute("DELETE FROM cards WHERE game_id = ?", (game.id,))
            conn.executemany(
                """
                INSERT INTO cards (id, game_id, image_url, is_flipped, is_matched, pair_id, position)
                VALUES (:id, :game_id, :image_url, :is_flipped, :is_matched, :pair_id, :position)
                """,
                cards,
            )
            return existed is not None

        if self._run("save game", _save):
            game.version += 1

    def _load(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Game:
        card_rows = conn.execute(
            "SELECT * FROM cards WHERE game_id = ? ORDER BY position", (row["id"],)
        ).fetchall()
        return game_from_rows(dict(row), [dict(r) for r in card_rows])

    def get(self, game_id: str) -> Game | None:
        def _get(conn: sqlite3.Connection) -> Game | None:
            row = conn.execute("SELECT * FROM games WHERE id = ?", (game_id,)).fetchone()
            return self._load(conn, row) if row else None

        return self._run("get game", _get)

    def list_by_owner(self, owner_id: str, limit: int = USER_GAMES_LIMIT) -> list[Game]:
        def _list(conn: sqlite3.Connection) -> list[Game]:
            rows = conn.execute(
                "SELECT * FROM games WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
                (owner_id, limit),
            ).fetchall()
            return [self._load(conn, r) for r in rows]

        return self._run("list user games", _list)

    @staticmethod
    def _claim(conn: sqlite3.Connection, game: Game) -> None:
        cur = conn.execute(
            "UPDATE games SET version = version + 1, updated_at = ? WHERE id = ? AND version = ?",
            (_ts(utcnow()), game.id, game.version),
        )
        if cur.rowcount == 1:
            return
        exists = conn.execute("SELECT 1 FROM games WHERE id = ?", (game.id,)).fetchone()
        if not exists:
            raise GameNotFoundError(f"Game {game.id} not found")
        raise ConflictError(f"Game {game.id} version {game.version} is stale")

    def update_card(self, card: Card, game: Game) -> None:
        position = _position(game, card)

        def _update(conn: sqlite3.Connection) -> None:
            self._claim(conn, game)
            cur = conn.execute(
                """
                UPDATE cards SET is_flipped = ?, is_matched = ?, position = ?
                WHERE id = ? AND game_id = ?
                """,
                (card.is_flipped, card.is_matched, position, card.id, game.id),
            )
            if cur.rowcount != 1:
                raise CardNotFoundError(f"Card {card.id} not found in game {game.id}")

        self._run("update card", _update)
        game.version += 1

    def update_game(self, game: Game) -> None:
        def _update(conn: sqlite3.Connection) -> None:
            self._claim(conn, game)
            conn.execute(
                """
                UPDATE games SET is_complete = ?, moves = ?, start_time = ?, end_time = ?
                WHERE id = ?
                """,
                (game.is_complete, game.moves, _ts(game.start_time), _ts(game.end_time), game.id),
            )

        self._run("update game", _update)
        game.version += 1

    def delete(self, game_id: str, owner_id: str) -> bool:
        def _delete(conn: sqlite3.Connection) -> bool:
            cur = conn.execute(
                "DELETE FROM games WHERE id = ? AND user_id = ?", (game_id, owner_id)
            )
            if cur.rowcount == 0:
                return False
            conn.execute("DELETE FROM cards WHERE game_id = ?", (game_id,))
            return True

        return self._run("delete game", _delete)
