"""
Операции над партиями для HTTP-слоя: создание, чтение, ход, сброс, список, удаление.
Payload-функции собирают JSON-ответы клиенту.
"""
import logging
from datetime import datetime
from typing import Sequence

from .constants import FLIP_CONFLICT_RETRIES, USER_GAMES_LIMIT
from .deck import build_deck, shuffle_cards
from .directory import GameDirectory
from .errors import GameNotFoundError, InvalidInputError
from .game import Card, Game
from .turns import FlipResult, GameLocks, TurnCoordinator

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def card_payload(c: Card) -> dict:
    return {
        "id": c.id,
        "imageUrl": c.image_url,
        "pairId": c.pair_id,
        "isFlipped": c.is_flipped,
        "isMatched": c.is_matched,
    }


def game_summary_payload(g: Game) -> dict:
    """Партия без карт — для списка партий пользователя."""
    return {
        "id": g.id,
        "status": g.status.value,
        "moves": g.moves,
        "isComplete": g.is_complete,
        "startTime": _iso(g.start_time),
        "endTime": _iso(g.end_time),
        "elapsedTime": g.elapsed_time(),
        "matchedPairs": g.matched_pairs_count(),
        "totalPairs": g.total_pairs_count(),
        "createdAt": _iso(g.created_at),
    }


def game_state_payload(g: Game) -> dict:
    return {
        **game_summary_payload(g),
        "userId": g.user_id,
        "cards": [card_payload(c) for c in g.cards],
    }


def flip_payload(r: FlipResult) -> dict:
    return {
        "card": card_payload(r.card),
        "pendingCount": r.pending_count,
        "isMatch": r.is_match,
        "isComplete": r.is_complete,
        "moves": r.moves,
        "matchedPairs": r.matched_pairs,
        "totalPairs": r.total_pairs,
        "elapsedTime": r.game.elapsed_time(),
    }


class GameService:
    def __init__(self, directory: GameDirectory, max_flip_attempts: int = FLIP_CONFLICT_RETRIES):
        self.directory = directory
        self.locks = GameLocks()
        self.turns = TurnCoordinator(directory, self.locks, max_flip_attempts)

    def create_game(self, image_urls: Sequence[str], owner_id: str | None = None) -> Game:
        game = Game(cards=build_deck(image_urls), user_id=owner_id)
        self.directory.save(game)
        logger.info(
            "game: created id=%s pairs=%d owner=%s",
            game.id, game.total_pairs_count(), owner_id or "-",
        )
        return game

    def _load(self, game_id: str) -> Game:
        game = self.directory.get(game_id)
        if game is None:
            raise GameNotFoundError(f"Game {game_id} not found")
        return game

    def get_game(self, game_id: str) -> Game:
        game = self._load(game_id)
        if game.is_complete or not game.check_completion():
            return game
        # Прерванный раунд: все пары найдены, а завершение не записано
        with self.locks.hold(game_id):
            return self.turns.settle(self._load(game_id))

    def flip(self, game_id: str, card_id: str) -> FlipResult:
        return self.turns.flip(game_id, card_id)

    def reset(self, game_id: str) -> Game:
        """Сброс пишется одной транзакцией: новый порядок колоды и нули вместе."""
        with self.locks.hold(game_id):
            game = self._load(game_id)
            game.reset(shuffle_cards)
            self.directory.save(game)
        logger.info("game: reset id=%s", game_id)
        return game

    def list_games_for_owner(self, owner_id: str, limit: int = USER_GAMES_LIMIT) -> list[Game]:
        if limit < 1:
            raise InvalidInputError("limit must be positive")
        return self.directory.list_by_owner(owner_id, limit)

    def delete_game(self, game_id: str, owner_id: str) -> None:
        """Удалить партию владельца; чужая или несуществующая — GameNotFoundError."""
        with self.locks.hold(game_id):
            deleted = self.directory.delete(game_id, owner_id)
        if not deleted:
            raise GameNotFoundError(f"Game {game_id} not found")
        logger.info("game: deleted id=%s owner=%s", game_id, owner_id)
