# app/main.py
from contextlib import asynccontextmanager, suppress
import asyncio
import logging

from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI

from app.core.config import get_settings
from app.core.errors import register_error_handlers
from app.database import create_db_and_tables, engine
from app.repositories.cart_repo import CartRepository
from app.services.cart_reaper import CartReaper, run_reaper_forever

# Import models so SQLModel metadata is populated before create_all()
from app.models import user as _user_models  # noqa: F401
from app.models import restaurant as _restaurant_models  # noqa: F401
from app.models import product as _product_models  # noqa: F401
from app.models import courier as _courier_models  # noqa: F401
from app.models import zone as _zone_models  # noqa: F401
from app.models import cart as _cart_models  # noqa: F401
from app.models import order as _order_models  # noqa: F401


# Routers
from app.routers.cart import router as cart_router
from app.routers.orders import router as orders_router
from app.routers.partner_orders import router as partner_orders_router
from app.routers.courier_orders import router as courier_orders_router
from app.routers.zones import router as zones_router
from app.routers.admin_stats import router as admin_stats_router

settings = get_settings()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Verify DB connectivity and create tables.
      - Start the expired-cart reaper (unless the interval is 0).

    Shutdown:
      - Cancel the reaper task.
    """
    logger.info("Startup: connecting to database...")
    try:
        create_db_and_tables()
        logger.info("Startup: DB connection OK, tables verified.")
    except Exception as e:
        logger.error(f"Startup: DB connection FAILED: {e}")
        raise

    reaper_task = None
    if settings.CART_REAPER_INTERVAL_SECONDS > 0:
        reaper_task = asyncio.create_task(
            run_reaper_forever(
                CartReaper(CartRepository()),
                engine,
                settings.CART_REAPER_INTERVAL_SECONDS,
            )
        )
        logger.info(
            "Startup: cart reaper every %ss", settings.CART_REAPER_INTERVAL_SECONDS
        )

    yield

    if reaper_task is not None:
        reaper_task.cancel()
        with suppress(asyncio.CancelledError):
            await reaper_task


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
)

register_error_handlers(app)

# --- CORS configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Versioned API prefix, e.g. /api/v1
app.include_router(cart_router, prefix=settings.API_V1_STR)
app.include_router(orders_router, prefix=settings.API_V1_STR)
app.include_router(partner_orders_router, prefix=settings.API_V1_STR)
app.include_router(courier_orders_router, prefix=settings.API_V1_STR)
app.include_router(zones_router, prefix=settings.API_V1_STR)
app.include_router(admin_stats_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "marketplace-ordering"}
