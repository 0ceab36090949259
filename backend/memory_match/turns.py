"""
Разрешение переворота карты (TurnCoordinator).
Каждый переворот идёт под блокировкой партии; каждый шаг сразу пишется в GameDirectory.
Несовпавшую пару обратно переворачивает клиент отдельными flip-запросами, сервер таймеров не ставит.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from typing import Iterator

from .constants import FLIP_CONFLICT_RETRIES, ROUND_SIZE
from .directory import GameDirectory
from .errors import AlreadyMatchedError, ConflictError, GameNotFoundError, RoundPendingError
from .game import Card, Game

logger = logging.getLogger(__name__)


@dataclass
class FlipResult:
    card: Card
    pending_count: int
    is_match: bool
    is_complete: bool
    moves: int
    matched_pairs: int
    total_pairs: int
    game: Game


class _GameLock:
    def __init__(self) -> None:
        self.lock = Lock()
        self.holders = 0


class GameLocks:
    """
    Мьютекс на каждую партию: не более одного разрешения хода на game_id.
    Запись живёт, пока её кто-то держит или ждёт, так что словарь не растёт от чужих id.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[str, _GameLock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, game_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(game_id)
            if entry is None:
                entry = self._locks[game_id] = _GameLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._locks[game_id]


class TurnCoordinator:
    def __init__(
        self,
        directory: GameDirectory,
        locks: GameLocks | None = None,
        max_attempts: int = FLIP_CONFLICT_RETRIES,
    ):
        self.directory = directory
        self.locks = locks or GameLocks()
        self.max_attempts = max(1, max_attempts)

    def flip(self, game_id: str, card_id: str) -> FlipResult:
        """
        Перевернуть карту в сохранённой партии.
        Конфликт версий до первой записи повторяется с перечитыванием партии.
        """
        with self.locks.hold(game_id):
            attempt = 1
            while True:
                game = self.directory.get(game_id)
                if game is None:
                    raise GameNotFoundError(f"Game {game_id} not found")
                try:
                    self.settle(game)
                    return self.resolve_flip(game, card_id)
                except ConflictError as e:
                    if not e.retryable or attempt >= self.max_attempts:
                        raise
                    logger.warning(
                        "flip: version conflict game=%s attempt=%d/%d, retrying",
                        game_id, attempt, self.max_attempts,
                    )
                    attempt += 1

    def settle(self, game: Game) -> Game:
        """
        Завершить партию, у которой все карты совпали, а запись о завершении не дошла
        до хранилища (сбой на последнем update_game раунда).
        """
        if game.is_complete or not game.check_completion():
            return game
        logger.warning("flip: game=%s has all pairs matched but was not complete, repairing", game.id)
        try:
            self.directory.update_game(game)
        except ConflictError as e:
            e.retryable = True
            raise
        return game

    def resolve_flip(self, game: Game, card_id: str) -> FlipResult:
        card = game.find_card(card_id)
        if card.is_matched:
            raise AlreadyMatchedError(f"Card {card_id} is already matched")
        if len(game.pending_cards()) >= ROUND_SIZE and not card.is_flipped:
            raise RoundPendingError()

        version = game.version
        try:
            if game.start():
                self.directory.update_game(game)
            card.flip()
            self.directory.update_card(card, game)
        except ConflictError as e:
            e.retryable = game.version == version
            raise

        pending = game.pending_cards()
        is_match = False
        if len(pending) == ROUND_SIZE:
            game.increment_moves()
            first, second = pending
            is_match = first.pair_id == second.pair_id
            if is_match:
                for c in pending:
                    c.match()
                    self.directory.update_card(c, game)
                game.check_completion()
            self.directory.update_game(game)

        logger.info(
            "flip: game=%s card=%s pending=%d match=%s moves=%d complete=%s",
            game.id, card.id, len(pending), is_match, game.moves, game.is_complete,
        )
        return FlipResult(
            card=card,
            pending_count=len(pending),
            is_match=is_match,
            is_complete=game.is_complete,
            moves=game.moves,
            matched_pairs=game.matched_pairs_count(),
            total_pairs=game.total_pairs_count(),
            game=game,
        )
