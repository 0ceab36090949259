"""
Карта и партия: состояния и переходы.
Раунды (сравнение двух открытых карт) решает turns.TurnCoordinator.
"""
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from .errors import AlreadyMatchedError, CardNotFoundError, InvalidInputError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CardState(str, Enum):
    HIDDEN = "hidden"
    REVEALED = "revealed"
    RESOLVED = "resolved"


class GameStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass
class Card:
    id: str
    image_url: str
    pair_id: str
    is_flipped: bool = False
    is_matched: bool = False

    @property
    def state(self) -> CardState:
        if self.is_matched:
            return CardState.RESOLVED
        return CardState.REVEALED if self.is_flipped else CardState.HIDDEN

    def flip(self) -> None:
        if self.is_matched:
            raise AlreadyMatchedError(f"Card {self.id} is already matched")
        self.is_flipped = not self.is_flipped

    def match(self) -> None:
        # Совпавшая карта остаётся открытой навсегда
        self.is_flipped = True
        self.is_matched = True

    def reset(self) -> None:
        self.is_flipped = False
        self.is_matched = False


@dataclass
class Game:
    cards: list[Card]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    moves: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    is_complete: bool = False
    user_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    version: int = 0  # оптимистичная блокировка в GameDirectory

    def __post_init__(self) -> None:
        if len(self.cards) < 2 or len(self.cards) % 2:
            raise InvalidInputError("A deck needs an even number of cards, at least two")

    @property
    def status(self) -> GameStatus:
        if self.is_complete:
            return GameStatus.COMPLETE
        if self.start_time is None:
            return GameStatus.NOT_STARTED
        return GameStatus.IN_PROGRESS

    def find_card(self, card_id: str) -> Card:
        for card in self.cards:
            if card.id == card_id:
                return card
        raise CardNotFoundError(f"Card {card_id} not found in game {self.id}")

    def pending_cards(self) -> list[Card]:
        """Открытые, но ещё не совпавшие карты, в порядке колоды."""
        return [c for c in self.cards if c.is_flipped and not c.is_matched]

    def start(self, now: datetime | None = None) -> bool:
        """Запустить часы. Возвращает False, если партия уже идёт."""
        if self.start_time is not None:
            return False
        self.start_time = now or utcnow()
        return True

    def elapsed_time(self, now: datetime | None = None) -> int:
        """Целые секунды с начала партии (до конца, если она завершена)."""
        if self.start_time is None:
            return 0
        until = self.end_time or now or utcnow()
        return max(0, math.floor((until - self.start_time).total_seconds()))

    def check_completion(self, now: datetime | None = None) -> bool:
        all_matched = all(c.is_matched for c in self.cards)
        if all_matched and not self.is_complete:
            self.end_time = now or utcnow()
            self.is_complete = True
        return all_matched

    def increment_moves(self) -> None:
        self.moves += 1

    def matched_pairs_count(self) -> int:
        return sum(1 for c in self.cards if c.is_matched) // 2

    def total_pairs_count(self) -> int:
        return len(self.cards) // 2

    def reset(self, shuffle: Callable[[list[Card]], list[Card]]) -> None:
        """
        Вернуть партию в not_started: все карты закрыты, новый порядок колоды,
        счётчики и время обнулены. shuffle — deck.shuffle_cards или аналог.
        """
        for card in self.cards:
            card.reset()
        self.cards = shuffle(self.cards)
        self.moves = 0
        self.start_time = None
        self.end_time = None
        self.is_complete = False
