"""AdSync - FastAPI Application Entry Point.

Meta Ads hierarchy sync: campaigns, ad sets, ads and daily metrics.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from adsync.database import init_db, test_connection, session_factory
from adsync.connectors.meta.client import MetaClient
from adsync.scheduler.jobs import start_scheduler, stop_scheduler
from adsync.sync.credentials import CredentialStore
from adsync.sync.notifications import DatabaseNotificationSink, NotificationDispatcher
from adsync.sync.orchestrator import SyncOrchestrator
from adsync.api.sync_routes import router as sync_router
from adsync.core.logging import get_logger, install_redaction

logger = get_logger("main")

IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 AdSync starting up...")
    install_redaction()
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected: sync runs will fail")

    # One client and one dispatcher for the whole process
    client = MetaClient()
    dispatcher = NotificationDispatcher(DatabaseNotificationSink(session_factory))
    dispatcher.start()
    credentials = CredentialStore(session_factory)
    orchestrator = SyncOrchestrator(client, credentials, session_factory, dispatcher)
    app.state.credentials = credentials
    app.state.orchestrator = orchestrator

    if not IS_SERVERLESS:
        start_scheduler(orchestrator)
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    await dispatcher.stop()
    await client.close()
    logger.info("AdSync shut down")


app = FastAPI(
    title="AdSync",
    description="Reconciles Meta Ads campaigns, ad sets, ads and daily metrics into a local store.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(sync_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "adsync",
        "version": "1.0.0",
    }
