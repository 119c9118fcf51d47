import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import SQLModel

from app.core.config import settings
from app.core.errors import register_exception_handlers
from app.core.logging_config import configure_logging
from app.db.session import engine
from app.models.token import UserToken, utcnow  # noqa: F401 - registers the table
from app.schemas.meta import HealthResponse

from app.api.v1.endpoints import auth, meta

configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.PROJECT_NAME} ({settings.ENVIRONMENT})")
    SQLModel.metadata.create_all(engine)
    logger.info("Database tables ready")
    if not settings.oauth_configured:
        logger.warning("META_APP_ID / META_APP_SECRET not set, /auth/start will fail")
    yield
    logger.info(f"Stopping {settings.PROJECT_NAME}")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

origins = settings.cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    # path only, query strings can carry codes and state
    logger.info(f"{request.method} {request.url.path}")
    return await call_next(request)

register_exception_handlers(app)

app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(meta.router, prefix="/meta", tags=["Meta Ads"])

@app.get("/")
def read_root():
    return {
        "success": True,
        "message": "Zoho Cliq + Meta Ads Integration API",
        "version": settings.VERSION,
        "endpoints": {
            "auth": {
                "start": "GET /auth/start?userId=USER_ID",
                "callback": "GET /auth/callback?code=CODE&state=STATE",
                "status": "GET /auth/status?userId=USER_ID",
            },
            "meta": {
                "campaigns": "GET /meta/campaigns?userId=USER_ID&adAccountId=ACT_123",
                "spend": "GET /meta/spend?userId=USER_ID&adAccountId=ACT_123",
                "leads": "GET /meta/leads?userId=USER_ID&adAccountId=ACT_123",
                "adsets": "GET /meta/adsets?userId=USER_ID&adAccountId=ACT_123",
                "accounts": "GET /meta/accounts?userId=USER_ID",
            },
        },
    }

@app.get("/health", response_model=HealthResponse)
def health_check():
    return HealthResponse(message="Server is running", timestamp=utcnow())
