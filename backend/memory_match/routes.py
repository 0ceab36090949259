"""
HTTP-маршруты игры: /api/game/...
Ответы в форме {"success": true, ...}; ошибки рендерит обработчик GameError в main.py.
"""
from fastapi import APIRouter, Depends, File, Request, UploadFile
from pydantic import BaseModel, Field

from .auth import current_user_id, require_user_id
from .constants import LIMITS, USER_GAMES_LIMIT
from .errors import InvalidInputError
from .service import (
    GameService,
    flip_payload,
    game_state_payload,
    game_summary_payload,
)
from .storage import LocalImageStore

router = APIRouter(prefix="/api/game")


class CreateGameRequest(BaseModel):
    images: list[str] = Field(default_factory=list)


def get_service(request: Request) -> GameService:
    return request.app.state.service


def get_image_store(request: Request) -> LocalImageStore:
    return request.app.state.image_store


@router.post("/create", status_code=201)
def create_game(
    body: CreateGameRequest,
    service: GameService = Depends(get_service),
    user_id: str | None = Depends(current_user_id),
):
    game = service.create_game(body.images, owner_id=user_id)
    return {"success": True, "gameId": game.id, "game": game_state_payload(game)}


@router.post("/upload", status_code=201)
def upload_images(
    images: list[UploadFile] = File(...),
    service: GameService = Depends(get_service),
    store: LocalImageStore = Depends(get_image_store),
    user_id: str | None = Depends(current_user_id),
):
    if not images:
        raise InvalidInputError("No files were uploaded.")
    if len(images) > LIMITS["max_images"]:
        raise InvalidInputError(f"At most {LIMITS['max_images']} images per game")
    for f in images:
        store.check_name(f.filename or "")

    urls: list[str] = []
    try:
        for f in images:
            # Лишний байт сверх лимита нужен, чтобы store распознал слишком большой файл
            data = f.file.read(store.max_bytes + 1)
            urls.append(store.store(data, f.filename or ""))
        game = service.create_game(urls, owner_id=user_id)
    except Exception:
        for url in urls:
            store.discard(url)
        raise
    return {
        "success": True,
        "gameId": game.id,
        "message": "Files uploaded successfully",
        "imageCount": len(urls),
        "game": game_state_payload(game),
    }


# Должен стоять до /{game_id}, иначе "user" распознается как id партии
@router.get("/user/games")
def list_user_games(
    limit: int = USER_GAMES_LIMIT,
    service: GameService = Depends(get_service),
    user_id: str = Depends(require_user_id),
):
    games = service.list_games_for_owner(user_id, limit)
    return {"success": True, "games": [game_summary_payload(g) for g in games]}


@router.get("/{game_id}")
def get_game(game_id: str, service: GameService = Depends(get_service)):
    game = service.get_game(game_id)
    return {"success": True, "game": game_state_payload(game)}


@router.post("/{game_id}/card/{card_id}/flip")
def flip_card(game_id: str, card_id: str, service: GameService = Depends(get_service)):
    result = service.flip(game_id, card_id)
    return {"success": True, **flip_payload(result)}


@router.post("/{game_id}/reset")
def reset_game(game_id: str, service: GameService = Depends(get_service)):
    game = service.reset(game_id)
    return {
        "success": True,
        "gameId": game.id,
        "message": "Game reset successfully",
        "game": game_state_payload(game),
    }


@router.delete("/{game_id}")
def delete_game(
    game_id: str,
    service: GameService = Depends(get_service),
    user_id: str = Depends(require_user_id),
):
    service.delete_game(game_id, user_id)
    return {"success": True, "message": "Game deleted successfully"}
