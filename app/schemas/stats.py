# app/schemas/stats.py
import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import ConfigDict
from sqlmodel import SQLModel

from app.schemas.order import OrderStatus


class DailySales(SQLModel):
    """
    Revenue per day for a given month/year.
    """
    model_config = ConfigDict(extra="forbid")

    date: date
    total_revenue: Decimal
    order_count: int


class TopProduct(SQLModel):
    """
    Aggregated stats for top-selling products.
    """
    model_config = ConfigDict(extra="forbid")

    product_id: uuid.UUID
    title: str
    total_quantity: int
    total_revenue: Decimal


class StatusCount(SQLModel):
    model_config = ConfigDict(extra="forbid")

    status: OrderStatus
    count: int


class AbandonedCartStats(SQLModel):
    """
    Carts that expired or were cleared without becoming an order.
    """
    model_config = ConfigDict(extra="forbid")

    count: int
    lost_revenue: Decimal


class LatestOrderSummary(SQLModel):
    """
    Lightweight info for last N orders.
    """
    model_config = ConfigDict(extra="forbid")

    id: uuid.UUID
    order_number: str
    created_at: datetime
    customer_id: uuid.UUID
    total_price: Decimal
    status: OrderStatus


class AdminDashboardStats(SQLModel):
    """
    Full payload for admin dashboard.
    """
    model_config = ConfigDict(extra="forbid")

    year: int
    month: int
    total_customers: int
    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
    status_breakdown: list[StatusCount]
    daily_sales: list[DailySales]
    top_products: list[TopProduct]
    abandoned_carts: AbandonedCartStats
    latest_orders: list[LatestOrderSummary]
