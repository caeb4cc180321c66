# sitebuilder/main.py
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sitebuilder.core.config import get_settings
from sitebuilder.database import create_db_and_tables

# Import models so SQLModel metadata is populated before create_all()
from sitebuilder.models import user as _user_models  # noqa: F401
from sitebuilder.models import site as _site_models  # noqa: F401
from sitebuilder.models import product as _product_models  # noqa: F401
from sitebuilder.models import discount as _discount_models  # noqa: F401
from sitebuilder.models import basket as _basket_models  # noqa: F401
from sitebuilder.models import order as _order_models  # noqa: F401
from sitebuilder.models import payment as _payment_models  # noqa: F401
from sitebuilder.models import page as _page_models  # noqa: F401

# Routers
from sitebuilder.routers.articles import router as articles_router
from sitebuilder.routers.basket import router as basket_router
from sitebuilder.routers.callback import router as callback_router
from sitebuilder.routers.discounts import router as discounts_router
from sitebuilder.routers.header_footers import router as header_footers_router
from sitebuilder.routers.order import router as order_router
from sitebuilder.routers.pages import router as pages_router
from sitebuilder.routers.payment import router as payment_router
from sitebuilder.routers.products import router as products_router
from sitebuilder.routers.users import router as users_router

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Verify DB connectivity and create tables.

    Shutdown:
      - No special cleanup needed for sync engine.
    """
    logger.info("Startup: connecting to the main database...")
    try:
        create_db_and_tables()
        logger.info("Startup: DB connection OK, tables verified.")
    except Exception as e:
        logger.error(f"Startup: DB connection FAILED: {e}")
        raise
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


# --- Error mapping ---


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    fields = {
        ".".join(str(p) for p in err["loc"] if p != "body") or "body": err["msg"]
        for err in exc.errors()
    }
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "code": "ValidationFailed",
                "message": "Request validation failed",
                "fields": fields,
            }
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": {"code": "Internal", "message": "Internal error"}},
    )


# --- CORS configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Versioned API prefix, e.g. /api/v1
app.include_router(users_router, prefix=settings.API_V1_STR)
app.include_router(products_router, prefix=settings.API_V1_STR)
app.include_router(discounts_router, prefix=settings.API_V1_STR)
app.include_router(basket_router, prefix=settings.API_V1_STR)
app.include_router(order_router, prefix=settings.API_V1_STR)
app.include_router(payment_router, prefix=settings.API_V1_STR)
app.include_router(pages_router, prefix=settings.API_V1_STR)
app.include_router(articles_router, prefix=settings.API_V1_STR)
app.include_router(header_footers_router, prefix=settings.API_V1_STR)

# Gateway callbacks keep a stable, unversioned URL.
app.include_router(callback_router)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "sitebuilder-backend"}
