"""
Сборка колоды: по две карты на изображение с общим pair_id, затем перемешивание.
"""
import random
import uuid
from typing import Sequence

from .constants import LIMITS
from .errors import InvalidInputError
from .game import Card

_rng = random.SystemRandom()


def shuffle_cards(cards: list[Card], rng: random.Random | None = None) -> list[Card]:
    """Фишер-Йетс на копии списка: все (2N)! перестановок равновероятны."""
    rng = rng or _rng
    shuffled = list(cards)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def build_deck(image_urls: Sequence[str], rng: random.Random | None = None) -> list[Card]:
    """
    Построить перемешанную колоду из 2N карт.
    Пустой список, пустые ссылки или слишком много изображений — InvalidInputError.
    """
    if isinstance(image_urls, str) or not image_urls or len(image_urls) < LIMITS["min_images"]:
        raise InvalidInputError("No images provided for the game")
    if len(image_urls) > LIMITS["max_images"]:
        raise InvalidInputError(f"At most {LIMITS['max_images']} images per game")
    cards: list[Card] = []
    for url in image_urls:
        if not isinstance(url, str) or not url.strip():
            raise InvalidInputError("Image reference must be a non-empty string")
        pair_id = str(uuid.uuid4())
        cards.append(Card(id=str(uuid.uuid4()), image_url=url, pair_id=pair_id))
        cards.append(Card(id=str(uuid.uuid4()), image_url=url, pair_id=pair_id))
    return shuffle_cards(cards, rng)
