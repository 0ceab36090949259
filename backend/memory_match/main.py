"""
Memory Match API: создание партий из изображений, перевороты карт, сброс.
"""
import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import get_config
from .constants import UPLOADS_URL_PREFIX
from .directory import GameDirectory, InMemoryGameDirectory, SqliteGameDirectory
from .errors import GameError
from .routes import router
from .service import GameService
from .storage import LocalImageStore

logging.basicConfig(
    level=get_config().log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_directory(config) -> GameDirectory:
    if config.database_path:
        logger.info("DB: using SQLite at %s", config.database_path)
        return SqliteGameDirectory(config.database_path)
    logger.info("DB: DATABASE_PATH not set, games are kept in memory")
    return InMemoryGameDirectory()


def create_app(
    config=None,
    directory: GameDirectory | None = None,
    image_store: LocalImageStore | None = None,
) -> FastAPI:
    config = config or get_config()
    directory = directory or build_directory(config)
    directory.init_schema()
    image_store = image_store or LocalImageStore(
        config.upload_dir, max_bytes=config.max_upload_bytes
    )

    app = FastAPI(title="Memory Match API")
    app.state.service = GameService(directory, config.flip_conflict_retries)
    app.state.image_store = image_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GameError)
    async def game_error_handler(request: Request, exc: GameError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message},
        )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(router)

    app.mount(
        UPLOADS_URL_PREFIX,
        StaticFiles(directory=str(image_store.root), check_dir=False),
        name="uploads",
    )
    # Статика фронтенда (для разработки)
    frontend_path = Path(__file__).resolve().parent.parent.parent / "frontend"
    if frontend_path.is_dir():
        app.mount("/", StaticFiles(directory=str(frontend_path), html=True), name="frontend")
    return app


app = create_app()
