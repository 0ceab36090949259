"""
Текущий пользователь по access token провайдера авторизации.
Токен — JWT с подписью HS256 общим секретом, id пользователя в claim "sub".
Логика регистрации и входа живёт у провайдера; здесь только «кто вызывает, если вообще кто-то».
"""
import logging

import jwt
from fastapi import Depends, Header

from .config import get_config
from .errors import AuthRequiredError

logger = logging.getLogger(__name__)


def validate_access_token(token: str) -> dict | None:
    """
    Проверяет подпись токена и срок действия, возвращает данные пользователя или None.
    """
    if not token:
        return None
    config = get_config()
    secret = config.auth_jwt_secret
    if not secret:
        if config.debug:
            # В режиме отладки без секрета принимаем неподписанные токены
            return _parse_token_unsafe(token)
        return None

    try:
        claims = jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.InvalidTokenError as e:
        logger.info("auth: rejected token: %s", e)
        return None
    return _user_from_claims(claims)


def _parse_token_unsafe(token: str) -> dict | None:
    """Читает claims без проверки подписи (только для debug)."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    return _user_from_claims(claims)


def _user_from_claims(claims: dict) -> dict | None:
    if not claims.get("sub"):
        return None
    return {
        "id": str(claims["sub"]),
        "email": claims.get("email", ""),
    }


def current_user_id(
    authorization: str | None = Header(default=None),
    x_debug_user: str | None = Header(default=None),
) -> str | None:
    """Зависимость FastAPI: id пользователя или None для анонимной игры."""
    if x_debug_user and get_config().debug:
        return x_debug_user
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    user = validate_access_token(token.strip())
    return user["id"] if user else None


def require_user_id(user_id: str | None = Depends(current_user_id)) -> str:
    if not user_id:
        raise AuthRequiredError()
    return user_id
