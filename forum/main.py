import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from forum.bus import bus
from forum.cache import cache
from forum.clients import close_http_clients
from forum.config import settings
from forum.exceptions import install_exception_handlers
from forum.middleware import RequestIdFilter, TimingMiddleware
from forum.routers import channels, follows, internal, messages, metrics, topics, users

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdFilter())

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings.check_secret()
    await cache.connect()  # App works without Redis
    await bus.start(cache.client)
    logger.info("forum started (env=%s, node=%s)", settings.APP_ENV, settings.NODE_ID)
    yield
    # Shutdown
    await bus.stop()
    await close_http_clients()
    await cache.disconnect()


app = FastAPI(
    title="Forum API",
    description="Channels, topics and messages served by cooperating entity services",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_exception_handlers(app)

# Routers
app.include_router(users.router)
app.include_router(channels.router)
app.include_router(topics.router)
app.include_router(messages.router)
app.include_router(follows.router)
app.include_router(metrics.router)
app.include_router(internal.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
