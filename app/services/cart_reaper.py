# app/services/cart_reaper.py
import asyncio
import logging
from datetime import datetime

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.engine import Engine
from sqlmodel import Session

from app.core.timeutils import utcnow
from app.database import transaction
from app.repositories.cart_repo import CartRepository

logger = logging.getLogger(__name__)


class CartReaper:
    """
    Background sweep that abandons active carts past their expiry.

    The sweep is one conditional UPDATE (status='active' AND expires_at <
    now), so a cart converted by an in-flight order is never touched, and
    the order transaction re-checks expiry on the cart it locks.
    """

    def __init__(self, cart_repo: CartRepository):
        self.cart_repo = cart_repo

    def sweep(self, session: Session, now: datetime | None = None) -> int:
        with transaction(session):
            count = self.cart_repo.abandon_expired(session, now or utcnow())
        if count:
            logger.info("Cart reaper abandoned %s expired cart(s)", count)
        return count

    def sweep_with_engine(self, engine: Engine) -> int:
        with Session(engine) as session:
            return self.sweep(session)


async def run_reaper_forever(reaper: CartReaper, engine: Engine, interval_seconds: int):
    """
    Run CartReaper.sweep every interval until cancelled. The blocking
    database work runs in the threadpool so the event loop stays free.
    """
    while True:
        try:
            await run_in_threadpool(reaper.sweep_with_engine, engine)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Cart reaper sweep failed")
        await asyncio.sleep(interval_seconds)
