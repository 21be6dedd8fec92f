# app/routers/admin_stats.py
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from app.core.auth import require_admin
from app.database import get_session
from app.repositories.stats_repo import StatsRepository
from app.schemas.stats import AdminDashboardStats
from app.services.stats_service import StatsService

router = APIRouter(prefix="/admin/stats", tags=["Admin Stats"])

service = StatsService(StatsRepository())


@router.get(
    "",
    response_model=AdminDashboardStats,
    dependencies=[Depends(require_admin)],
)
def get_marketplace_stats(
    session: Session = Depends(get_session),
    year: int | None = Query(default=None, ge=2000),
    month: int | None = None,
    top_products: int = Query(default=5, ge=1, le=50),
    latest_orders: int = Query(default=5, ge=1, le=50),
):
    """
    Ordering figures for one calendar month (UTC), current month by default.

    Covers order count and revenue (cancelled orders excluded), status
    breakdown, daily sales, best sellers, abandoned carts with the value
    they left behind, and the most recent orders.

    An out-of-range month is answered with 422 `validation_failed`.
    """
    return service.get_admin_dashboard_stats(
        session,
        year=year,
        month=month,
        top_n_products=top_products,
        latest_n_orders=latest_orders,
    )
