from datetime import date, datetime, timezone

import pytest

from bites import sales_service
from bites.models import Order, OrderAnalytics


def _sale(session, created_at, amount_cents, items=1, top="Masala Dosa", top_count=1):
    order = Order(table_number=1, total_cents=amount_cents, created_at=created_at)
    session.add(order)
    session.commit()
    session.add(OrderAnalytics(
        order_id=order.id,
        total_amount_cents=amount_cents,
        total_items_sold=items,
        top_item_name=top,
        top_item_count=top_count,
        created_at=created_at,
    ))
    session.commit()


def test_parse_month():
    assert sales_service.parse_month("2024-02") == date(2024, 2, 1)
    assert sales_service.parse_month(None, today=date(2024, 7, 19)) == date(2024, 7, 1)
    with pytest.raises(ValueError):
        sales_service.parse_month("2024/02")


def test_month_bounds_roll_over_year():
    start, end = sales_service.month_bounds(date(2024, 12, 1))
    assert start == datetime(2024, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_daily_sales_is_zero_filled(session):
    today = date(2024, 5, 10)
    _sale(session, datetime(2024, 5, 10, 12, tzinfo=timezone.utc), 5000)
    _sale(session, datetime(2024, 5, 10, 18, tzinfo=timezone.utc), 2500)
    _sale(session, datetime(2024, 5, 7, 9, tzinfo=timezone.utc), 1000)
    _sale(session, datetime(2024, 4, 1, 9, tzinfo=timezone.utc), 9999)

    days = sales_service.daily_sales(session, today)
    assert len(days) == 7
    assert days[0] == {"day": "Sat", "date": "2024-05-04", "sales": 0}
    assert days[3]["sales"] == 1000
    assert days[-1] == {"day": "Fri", "date": "2024-05-10", "sales": 7500}


def test_sales_dashboard(login_as, session):
    now = datetime.now(timezone.utc)
    _sale(session, now, 30000, items=3, top="Masala Dosa", top_count=2)
    _sale(session, now, 12000, items=2, top="Paneer Tikka", top_count=2)
    _sale(session, now, 5000, items=1, top="Masala Dosa", top_count=1)
    _sale(session, now, 0, items=0, top="N/A", top_count=0)

    cashier = login_as("cashier")
    dashboard = cashier.get("/api/v1/sales").json()
    assert dashboard["totalSales"] == 47000
    assert dashboard["totalItemsSold"] == 6
    assert dashboard["topSellingItems"][0] == {"topItemName": "Masala Dosa", "count": 3}
    assert "N/A" not in [row["topItemName"] for row in dashboard["topSellingItems"]]
    assert len(dashboard["orderAnalytics"]) == 4
    assert dashboard["dailySalesData"][-1]["sales"] == 47000
    assert dashboard["recentOrders"] == []


def test_empty_dashboard(admin):
    dashboard = admin.get("/api/v1/sales").json()
    assert dashboard["totalSales"] == 0
    assert dashboard["topSellingItems"] == []
    assert all(day["sales"] == 0 for day in dashboard["dailySalesData"])


def test_monthly_report(admin, session):
    _sale(session, datetime(2024, 2, 3, 10, tzinfo=timezone.utc), 10000, items=2)
    _sale(session, datetime(2024, 2, 28, 22, tzinfo=timezone.utc), 4000, items=1)
    _sale(session, datetime(2024, 3, 1, 0, tzinfo=timezone.utc), 7000, items=5)

    report = admin.get("/api/v1/reports/monthly", params={"month": "2024-02"}).json()
    assert report["month"] == "2024-02"
    assert report["totals"] == {"orders": 2, "itemsSold": 3, "sales_cents": 14000}
    assert report["rows"][0]["totalAmount_cents"] == 4000

    bad = admin.get("/api/v1/reports/monthly", params={"month": "Feb 2024"})
    assert bad.status_code == 400
    assert bad.json()["detail"] == "Month must be in YYYY-MM format"


def test_monthly_report_pdf(admin, session):
    _sale(session, datetime(2024, 2, 3, 10, tzinfo=timezone.utc), 10000, items=2)

    response = admin.get("/api/v1/reports/monthly/pdf", params={"month": "2024-02"})
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert 'filename="sales-report-2024-02.pdf"' in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")


def test_empty_month_still_renders_pdf(admin):
    response = admin.get("/api/v1/reports/monthly/pdf", params={"month": "2023-11"})
    assert response.content.startswith(b"%PDF")


def test_reports_permissions(login_as):
    chef = login_as("chef")
    assert chef.get("/api/v1/sales").status_code == 403
    assert chef.get("/api/v1/reports/monthly").status_code == 403
