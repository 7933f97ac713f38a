import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from directchat.core import config
from directchat.core.errors import ChatError
from directchat.core.middleware import logging_middleware
from directchat.core.realtime import RealtimeFeed
from directchat.core.store import SupabaseStore
from directchat.core.supabase_client import create_realtime_client
from directchat.services import get_services
from directchat.utils.logging_config import setup_logging

from .chat import routers as chat_router
from .friendship import routers as friend_router

logger = logging.getLogger(__name__)


async def chat_error_handler(request: Request, exc: ChatError):
    logger.info(
        f"chat_error type={type(exc).__name__} status={exc.status_code} "
        f"path={request.url.path}"
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = app.dependency_overrides.get(get_services, get_services)()
    feed = None

    if isinstance(services.store, SupabaseStore) and config.REALTIME_ENABLED:
        feed = RealtimeFeed(services.store)
        await feed.start(await create_realtime_client())
    elif config.WEB_CONCURRENCY > 1:
        logger.warning(
            f"realtime_disabled workers={config.WEB_CONCURRENCY} "
            f"live delivery only reaches sockets on the worker that stored the message"
        )

    yield

    if feed is not None:
        await feed.stop()


def create_app() -> FastAPI:
    setup_logging(config.LOG_LEVEL)

    app = FastAPI(title="directchat", lifespan=lifespan)
    app.include_router(friend_router.router, prefix="/friends", tags=["Friendship"])
    app.include_router(chat_router.router, prefix="/chat", tags=["Chat"])

    app.add_exception_handler(ChatError, chat_error_handler)
    app.middleware("http")(logging_middleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
