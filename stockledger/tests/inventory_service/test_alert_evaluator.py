from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal

from stockledger.inventory_service.app.alerts import (
    AlertSeverity,
    AlertType,
    evaluate_alerts,
    summarize_alerts,
)
from stockledger.inventory_service.app.domain import ProductRecord, ProductStatus

TODAY = date(2024, 3, 15)


def _product(
    product_id: int = 1,
    *,
    sku: str = "ELEC-003",
    quantity: int = 50,
    threshold: int = 10,
    expiry_date: date | None = None,
    status: ProductStatus = ProductStatus.ACTIVE,
) -> ProductRecord:
    stamp = datetime(2024, 3, 1, 12, 0, 0)
    return ProductRecord(
        id=product_id,
        sku=sku,
        name=f"Product {product_id}",
        description=None,
        category_id=None,
        supplier_id=None,
        quantity=quantity,
        unit="pcs",
        price=Decimal("10.00"),
        cost_price=Decimal("6.00"),
        low_stock_threshold=threshold,
        expiry_date=expiry_date,
        barcode=None,
        location=None,
        status=status,
        created_at=stamp,
        updated_at=stamp,
    )


def test_low_stock_is_warning_until_empty_then_critical() -> None:
    product = _product(quantity=5, threshold=10)

    alerts = evaluate_alerts([product], today=TODAY, expiry_window_days=7)
    assert len(alerts) == 1
    assert alerts[0].type is AlertType.LOW_STOCK
    assert alerts[0].severity is AlertSeverity.WARNING
    assert alerts[0].message == (
        "Low stock: Product 1 (ELEC-003) - Only 5 pcs remaining (threshold: 10)"
    )

    emptied = replace(product, quantity=0)
    alerts = evaluate_alerts([emptied], today=TODAY, expiry_window_days=7)
    assert [(a.type, a.severity) for a in alerts] == [(AlertType.LOW_STOCK, AlertSeverity.CRITICAL)]
    assert alerts[0].message == "OUT OF STOCK: Product 1 (ELEC-003)"


def test_quantity_equal_to_threshold_raises_alert() -> None:
    alerts = evaluate_alerts([_product(quantity=10, threshold=10)], today=TODAY, expiry_window_days=7)
    assert [alert.type for alert in alerts] == [AlertType.LOW_STOCK]

    assert evaluate_alerts([_product(quantity=11, threshold=10)], today=TODAY, expiry_window_days=7) == []


def test_expiry_severity_depends_on_days_remaining() -> None:
    in_five = _product(1, sku="FOOD-1", expiry_date=TODAY + timedelta(days=5))
    in_two = _product(2, sku="FOOD-2", expiry_date=TODAY + timedelta(days=2))
    expired = _product(3, sku="FOOD-3", expiry_date=TODAY - timedelta(days=1))
    far = _product(4, sku="FOOD-4", expiry_date=TODAY + timedelta(days=30))

    alerts = evaluate_alerts([in_five, in_two, expired, far], today=TODAY, expiry_window_days=7)
    by_sku = {alert.product.sku: alert for alert in alerts}

    assert set(by_sku) == {"FOOD-1", "FOOD-2", "FOOD-3"}
    assert (by_sku["FOOD-1"].type, by_sku["FOOD-1"].severity) == (AlertType.EXPIRING_SOON, AlertSeverity.INFO)
    assert (by_sku["FOOD-2"].type, by_sku["FOOD-2"].severity) == (
        AlertType.EXPIRING_SOON,
        AlertSeverity.WARNING,
    )
    assert (by_sku["FOOD-3"].type, by_sku["FOOD-3"].severity) == (AlertType.EXPIRED, AlertSeverity.CRITICAL)
    assert by_sku["FOOD-1"].days_until_expiry == 5
    assert by_sku["FOOD-3"].message == "EXPIRED: Product 3 (FOOD-3) - Expired on 2024-03-14"


def test_expiring_today_and_window_edge_are_included() -> None:
    today_item = _product(1, expiry_date=TODAY)
    edge_item = _product(2, expiry_date=TODAY + timedelta(days=7))
    past_edge = _product(3, expiry_date=TODAY + timedelta(days=8))

    alerts = evaluate_alerts([today_item, edge_item, past_edge], today=TODAY, expiry_window_days=7)

    assert [alert.product.id for alert in alerts] == [1, 2]
    assert alerts[0].severity is AlertSeverity.WARNING
    assert alerts[1].severity is AlertSeverity.INFO


def test_one_product_can_raise_stock_and_expiry_alerts() -> None:
    product = _product(quantity=0, expiry_date=TODAY - timedelta(days=3))

    alerts = evaluate_alerts([product], today=TODAY, expiry_window_days=7)

    assert [alert.type for alert in alerts] == [AlertType.LOW_STOCK, AlertType.EXPIRED]
    assert summarize_alerts(alerts).critical == 2


def test_ordering_is_stable_regardless_of_input_order() -> None:
    products = [
        _product(1, quantity=7),
        _product(2, quantity=2),
        _product(3, quantity=2),
        _product(4, expiry_date=TODAY + timedelta(days=6)),
        _product(5, expiry_date=TODAY + timedelta(days=1)),
    ]

    forward = evaluate_alerts(products, today=TODAY, expiry_window_days=7)
    backward = evaluate_alerts(list(reversed(products)), today=TODAY, expiry_window_days=7)

    assert [alert.product.id for alert in forward] == [2, 3, 1, 5, 4]
    assert forward == backward


def test_evaluation_is_idempotent_and_skips_retired_products() -> None:
    products = [
        _product(1, quantity=3),
        _product(2, quantity=0, status=ProductStatus.RETIRED),
    ]

    first = evaluate_alerts(products, today=TODAY, expiry_window_days=7)
    second = evaluate_alerts(products, today=TODAY, expiry_window_days=7)

    assert first == second
    assert [alert.product.id for alert in first] == [1]


def test_summary_counts_match_alert_list() -> None:
    products = [
        _product(1, quantity=0),
        _product(2, quantity=4),
        _product(3, expiry_date=TODAY + timedelta(days=6)),
    ]
    alerts = evaluate_alerts(products, today=TODAY, expiry_window_days=7)

    summary = summarize_alerts(alerts)

    assert (summary.critical, summary.warning, summary.info) == (1, 1, 1)
    assert summary.total == len(alerts) == 3


def test_alert_days_match_product_days_until_expiry() -> None:
    dated = _product(1, expiry_date=TODAY + timedelta(days=4))
    undated = _product(2, quantity=3)

    alerts = evaluate_alerts([dated, undated], today=TODAY, expiry_window_days=7)
    by_id = {alert.product.id: alert for alert in alerts}

    assert by_id[1].days_until_expiry == dated.days_until_expiry(TODAY) == 4
    assert by_id[2].days_until_expiry is None
    assert undated.days_until_expiry(TODAY) is None
