# app/services/stats_service.py
from datetime import date, datetime, timezone

from sqlmodel import Session

from app.core.errors import ValidationFailedError
from app.core.money import ZERO, to_money
from app.core.timeutils import utcnow
from app.repositories.stats_repo import StatsRepository
from app.schemas.stats import (
    AbandonedCartStats,
    AdminDashboardStats,
    DailySales,
    LatestOrderSummary,
    StatusCount,
    TopProduct,
)


def _month_range(year: int, month: int) -> tuple[datetime, datetime]:
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


class StatsService:
    """
    Orchestrates aggregated admin dashboard statistics.
    """

    def __init__(self, repo: StatsRepository):
        self.repo = repo

    def get_admin_dashboard_stats(
        self,
        session: Session,
        year: int | None = None,
        month: int | None = None,
        top_n_products: int = 5,
        latest_n_orders: int = 5,
    ) -> AdminDashboardStats:
        # Default to current month/year if not provided
        today = utcnow().date()
        if year is None:
            year = today.year
        if month is None:
            month = today.month

        if not 1 <= month <= 12:
            raise ValidationFailedError("month must be between 1 and 12", month=month)

        start, end = _month_range(year, month)

        total_customers = self.repo.count_customers(session)
        total_orders = self.repo.count_orders(session, start, end)
        total_revenue = to_money(self.repo.total_revenue(session, start, end) or 0)

        status_breakdown = [
            StatusCount(status=status, count=int(count or 0))
            for status, count in self.repo.status_breakdown(session, start, end)
        ]
        cancelled = sum(s.count for s in status_breakdown if s.status == "cancelled")
        paid_orders = total_orders - cancelled
        average_order_value = (
            to_money(total_revenue / paid_orders) if paid_orders else ZERO
        )

        # Daily sales
        daily_sales: list[DailySales] = []
        for day, revenue, order_count in self.repo.daily_sales(session, start, end):
            # func.date() yields a date on Postgres and an ISO string on SQLite
            if isinstance(day, datetime):
                day = day.date()
            elif not isinstance(day, date):
                day = date.fromisoformat(str(day))
            daily_sales.append(
                DailySales(
                    date=day,
                    total_revenue=to_money(revenue or 0),
                    order_count=int(order_count or 0),
                )
            )

        # Top products
        top_products: list[TopProduct] = []
        for product_id, title, total_quantity, product_revenue in self.repo.top_products(
            session, start, end, limit=top_n_products
        ):
            top_products.append(
                TopProduct(
                    product_id=product_id,
                    title=title,
                    total_quantity=int(total_quantity or 0),
                    total_revenue=to_money(product_revenue or 0),
                )
            )

        abandoned_count, lost_revenue = self.repo.abandoned_carts(session, start, end)

        # Latest orders
        latest_orders = [
            LatestOrderSummary(
                id=o.id,
                order_number=o.order_number,
                created_at=o.created_at,
                customer_id=o.customer_id,
                total_price=o.total_price,
                status=o.status,
            )
            for o in self.repo.latest_orders(session, limit=latest_n_orders)
        ]

        return AdminDashboardStats(
            year=year,
            month=month,
            total_customers=total_customers,
            total_orders=total_orders,
            total_revenue=total_revenue,
            average_order_value=average_order_value,
            status_breakdown=status_breakdown,
            daily_sales=daily_sales,
            top_products=top_products,
            abandoned_carts=AbandonedCartStats(
                count=int(abandoned_count or 0),
                lost_revenue=to_money(lost_revenue or 0),
            ),
            latest_orders=latest_orders,
        )
