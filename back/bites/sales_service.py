"""
Sales dashboard and monthly report queries over order analytics.
"""

from datetime import date, datetime, time, timedelta, timezone

from sqlmodel import Session, func, select

from . import models
from .order_service import serialize_order_item


def serialize_analytics(row: models.OrderAnalytics) -> dict:
    return {
        "id": row.id,
        "orderId": row.order_id,
        "totalAmount_cents": row.total_amount_cents,
        "totalItemsSold": row.total_items_sold,
        "topItemName": row.top_item_name,
        "topItemCount": row.top_item_count,
        "createdAt": row.created_at.isoformat(),
    }


def parse_month(month: str | None, today: date | None = None) -> date:
    """First day of a `YYYY-MM` month; the current month when omitted."""
    if not month:
        today = today or datetime.now(timezone.utc).date()
        return today.replace(day=1)
    parsed = datetime.strptime(month.strip(), "%Y-%m")
    return parsed.date()


def month_bounds(first_day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(first_day, time.min, tzinfo=timezone.utc)
    if first_day.month == 12:
        next_month = first_day.replace(year=first_day.year + 1, month=1)
    else:
        next_month = first_day.replace(month=first_day.month + 1)
    end = datetime.combine(next_month, time.min, tzinfo=timezone.utc)
    return start, end


def daily_sales(session: Session, today: date | None = None, days: int = 7) -> list[dict]:
    """Sales per calendar day for the last `days` days, zero-filled."""
    today = today or datetime.now(timezone.utc).date()
    first = today - timedelta(days=days - 1)
    since = datetime.combine(first, time.min, tzinfo=timezone.utc)

    totals = {first + timedelta(days=i): 0 for i in range(days)}
    rows = session.exec(
        select(models.OrderAnalytics).where(models.OrderAnalytics.created_at >= since)
    ).all()
    for row in rows:
        day = row.created_at.date()
        if day in totals:
            totals[day] += row.total_amount_cents

    return [
        {"day": day.strftime("%a"), "date": day.isoformat(), "sales": sales}
        for day, sales in totals.items()
    ]


def sales_dashboard(session: Session, today: date | None = None) -> dict:
    recent_analytics = session.exec(
        select(models.OrderAnalytics)
        .order_by(models.OrderAnalytics.created_at.desc(), models.OrderAnalytics.id.desc())
        .limit(10)
    ).all()

    total_sales = session.exec(select(func.sum(models.OrderAnalytics.total_amount_cents))).one()
    total_items = session.exec(select(func.sum(models.OrderAnalytics.total_items_sold))).one()

    top_count = func.sum(models.OrderAnalytics.top_item_count)
    top_items = session.exec(
        select(models.OrderAnalytics.top_item_name, top_count)
        .where(models.OrderAnalytics.top_item_name != "N/A")
        .group_by(models.OrderAnalytics.top_item_name)
        .order_by(top_count.desc())
        .limit(5)
    ).all()

    recent_orders = session.exec(
        select(models.OrderItem)
        .order_by(models.OrderItem.created_at.desc(), models.OrderItem.id.desc())
        .limit(5)
    ).all()

    return {
        "orderAnalytics": [serialize_analytics(row) for row in recent_analytics],
        "totalSales": total_sales or 0,
        "totalItemsSold": total_items or 0,
        "topSellingItems": [
            {"topItemName": name, "count": count or 0} for name, count in top_items
        ],
        "dailySalesData": daily_sales(session, today),
        "recentOrders": [serialize_order_item(item) for item in recent_orders],
    }


def monthly_report(session: Session, month: str | None = None) -> dict:
    """
    Analytics rows for one calendar month, newest first, with totals.
    Raises ValueError for a malformed month.
    """
    first_day = parse_month(month)
    start, end = month_bounds(first_day)
    rows = session.exec(
        select(models.OrderAnalytics)
        .where(models.OrderAnalytics.created_at >= start, models.OrderAnalytics.created_at < end)
        .order_by(models.OrderAnalytics.created_at.desc(), models.OrderAnalytics.id.desc())
    ).all()

    return {
        "month": first_day.strftime("%Y-%m"),
        "rows": [serialize_analytics(row) for row in rows],
        "totals": {
            "orders": len(rows),
            "itemsSold": sum(row.total_items_sold for row in rows),
            "sales_cents": sum(row.total_amount_cents for row in rows),
        },
    }
