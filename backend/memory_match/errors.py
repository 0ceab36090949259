"""
Ошибки игрового ядра.
Каждая несёт HTTP-код и читаемое сообщение для ответа клиенту.
"""


class GameError(Exception):
    status_code = 400
    default_message = "Game error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInputError(GameError):
    status_code = 400
    default_message = "Invalid input"


class AuthRequiredError(GameError):
    status_code = 401
    default_message = "Authentication required"


class GameNotFoundError(GameError):
    status_code = 404
    default_message = "Game not found"


class CardNotFoundError(GameError):
    status_code = 404
    default_message = "Card not found"


class AlreadyMatchedError(GameError):
    status_code = 409
    default_message = "Card is already matched"


class RoundPendingError(GameError):
    """Два несовпавших открытых карты ещё не перевёрнуты обратно."""
    status_code = 409
    default_message = "Two cards are already face up; flip them back first"


class ConflictError(GameError):
    status_code = 409
    default_message = "Game was modified concurrently"
    # True, если ни одна запись хода ещё не прошла и ход можно повторить
    retryable = False


class PersistenceError(GameError):
    status_code = 503
    default_message = "Storage unavailable"
