"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from helpdesk.core.config import settings
from helpdesk.core.errors import register_exception_handlers
from helpdesk.core.outbound import OutboundQueue
from helpdesk.core.structured_logging import configure_logging
from helpdesk.core.websocket import ConnectionManager
from helpdesk.db.session import engine
from helpdesk.services.realtime_events import RealtimeFanout
from helpdesk.services.telegram_service import TelegramNotifier

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        release=settings.VERSION,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Ticket text and emails stay out of Sentry
    )
    logger.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from helpdesk.core.rate_limit import limiter


# ============================================================================
# FastAPI App
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start/stop the outbound notification worker."""
    await app.state.outbound.start()
    if not app.state.telegram.enabled:
        logger.info("TELEGRAM_BOT_TOKEN not set, Telegram notifications disabled")
    try:
        yield
    finally:
        await app.state.outbound.stop()


app = FastAPI(
    title="Helpdesk API",
    description="Helpdesk ticketing with ticket chat and realtime updates",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

# Realtime + outbound plumbing, owned by this app instance
app.state.telegram = TelegramNotifier()
app.state.outbound = OutboundQueue(app.state.telegram.handlers(), maxsize=settings.OUTBOUND_QUEUE_SIZE)
app.state.connections = ConnectionManager()
app.state.fanout = RealtimeFanout(app.state.connections, app.state.outbound)

# Add rate limiter (429s use the standard error envelope)
app.state.limiter = limiter

register_exception_handlers(app)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    expose_headers=["X-Request-ID"],
)

# ============================================================================
# Routers
# ============================================================================

from helpdesk.routers import auth, chat, tickets, users, websocket

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(tickets.router, prefix="/tickets", tags=["tickets"])
app.include_router(chat.router, prefix="/chat", tags=["chat"])
app.include_router(websocket.router)

# Dev router (ONLY mounted in dev mode)
if settings.ENV == "dev":
    from helpdesk.routers import dev
    app.include_router(dev.router, prefix="/dev", tags=["dev"])


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and reports realtime connection count.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {
        "status": "ok",
        "env": settings.ENV,
        "version": settings.VERSION,
        "connections": app.state.connections.get_total_connections(),
    }
