from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workhive.api.middleware import AuditMiddleware
from workhive.api.v1.router import v1_router
from workhive.common.logging import get_logger, setup_logging
from workhive.config import settings
from workhive.db.session import engine

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("WorkHive escrow service starting (env=%s)", settings.APP_ENV)
    yield
    await engine.dispose()


app = FastAPI(
    title="WorkHive API",
    description="Escrow and dispute lifecycle for WorkHive projects",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AuditMiddleware)

# API routes
app.include_router(v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "workhive",
        "version": "1.0.0",
        "env": settings.APP_ENV,
    }
