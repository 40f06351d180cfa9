from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deflection.core.config import settings
from deflection.core.database import create_tables, engine

# Import models so SQLAlchemy registers tables for create_all().
import deflection.models.ab_test  # noqa: F401
import deflection.models.ai_response  # noqa: F401
import deflection.models.deflection_event  # noqa: F401
import deflection.models.deflection_settings  # noqa: F401
import deflection.models.feedback  # noqa: F401
import deflection.models.knowledge  # noqa: F401
import deflection.models.log_record  # noqa: F401
import deflection.models.metrics  # noqa: F401
import deflection.models.ticket  # noqa: F401

# Routes
from deflection.api.routes import ab_tests, feedback, knowledge, logs, metrics, tickets, webhooks
from deflection.api.routes import settings as settings_routes

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting up: initializing database...")
    await create_tables(engine)
    logger.info("Database initialized successfully.")

    yield

    logger.info("Shutting down...")
    await engine.dispose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(tickets.router, prefix=f"{settings.API_V1_STR}/tickets", tags=["Deflection"])
app.include_router(settings_routes.router, prefix=f"{settings.API_V1_STR}/users", tags=["Settings"])
app.include_router(knowledge.router, prefix=f"{settings.API_V1_STR}/users", tags=["Knowledge Base"])
app.include_router(metrics.router, prefix=f"{settings.API_V1_STR}/users", tags=["Metrics"])
app.include_router(ab_tests.router, prefix=settings.API_V1_STR, tags=["A/B Tests"])
app.include_router(feedback.router, prefix=f"{settings.API_V1_STR}/feedback", tags=["Feedback"])
app.include_router(webhooks.router, prefix=f"{settings.API_V1_STR}/webhooks", tags=["Webhooks"])
app.include_router(logs.router, prefix=f"{settings.API_V1_STR}/admin", tags=["Admin & Diagnostics"])


@app.get("/")
def read_root():
    return {"status": "success", "message": f"Welcome to {settings.PROJECT_NAME} API"}
