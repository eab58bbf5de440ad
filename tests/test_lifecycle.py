from __future__ import annotations

import pytest

from orderflow.errors import IllegalTransition, InvalidDocument, InvalidSourceState, OverDelivery
from orderflow.models.delivery_order import DeliveryLine, DeliveryOrder
from orderflow.models.quote import Quote, QuoteLine
from orderflow.models.sales_order import SalesOrder, SalesOrderLine
from orderflow.services import lifecycle


def _so(*lines, status="Open"):
    return SalesOrder(id="so-1", order_number="SO-1", status=status, lines=list(lines))


def _line(line_id, ordered, delivered=0.0):
    return SalesOrderLine(id=line_id, label=line_id, ordered_quantity=ordered, delivered_quantity=delivered)


@pytest.mark.parametrize("current,target", [
    ("Draft", "Sent"),
    ("Sent", "Accepted"),
    ("Sent", "Rejected"),
    ("Sent", "Expired"),
])
def test_legal_quote_transitions(current, target):
    lifecycle.check_quote_status_update(current, target)


@pytest.mark.parametrize("current,target", [
    ("Draft", "Accepted"),
    ("Draft", "Draft"),
    ("Accepted", "Sent"),
    ("Rejected", "Sent"),
    ("Expired", "Accepted"),
    ("Converted", "Accepted"),
    ("Sent", "Bogus"),
])
def test_illegal_quote_transitions(current, target):
    with pytest.raises(IllegalTransition):
        lifecycle.check_quote_status_update(current, target)


def test_converted_is_only_reached_by_conversion():
    with pytest.raises(IllegalTransition):
        lifecycle.check_quote_status_update("Accepted", "Converted")


def test_only_accepted_quotes_convert():
    lifecycle.ensure_quote_convertible(Quote(status="Accepted"))
    for status in ("Draft", "Sent", "Rejected", "Expired", "Converted"):
        with pytest.raises(InvalidSourceState):
            lifecycle.ensure_quote_convertible(Quote(status=status))


def test_quote_lines_copied_verbatim():
    q = Quote(status="Accepted", lines=[QuoteLine(id="l1", label="Bolt", quantity=12, unit_price_cent=50)])
    [ln] = lifecycle.sales_order_lines_from_quote(q)
    assert (ln.id, ln.label, ln.ordered_quantity, ln.delivered_quantity, ln.total_cent) == ("l1", "Bolt", 12, 0, 600)


def test_delivery_request_sums_duplicates_and_accepts_aliases():
    so = _so(_line("a", 10), _line("b", 5))
    req = lifecycle.normalize_delivery_request(so, [
        {"sales_order_line_id": "a", "quantity": 2},
        {"line_id": "a", "qty": "3"},
        DeliveryLine(sales_order_line_id="b", quantity=1),
    ])
    assert req == {"a": 5.0, "b": 1.0}


@pytest.mark.parametrize("items", [
    [],
    [{"line_id": "zzz", "quantity": 1}],
    [{"line_id": "a", "quantity": 0}],
    [{"line_id": "a", "quantity": -2}],
    [{"line_id": "a", "quantity": "lots"}],
    [{"line_id": "a", "quantity": "nan"}],
    [{"line_id": "a", "quantity": float("inf")}],
])
def test_malformed_delivery_requests(items):
    with pytest.raises(InvalidDocument):
        lifecycle.normalize_delivery_request(_so(_line("a", 10)), items)


def test_delivered_quantities_ignore_cancelled_and_foreign_orders():
    so = _so(_line("a", 10))
    dos = [
        DeliveryOrder(sales_order_id="so-1", lines=[DeliveryLine(sales_order_line_id="a", quantity=4)]),
        DeliveryOrder(sales_order_id="so-1", status="Cancelled",
                      lines=[DeliveryLine(sales_order_line_id="a", quantity=5)]),
        DeliveryOrder(sales_order_id="so-2", lines=[DeliveryLine(sales_order_line_id="a", quantity=3)]),
    ]
    assert lifecycle.delivered_quantities(so, dos) == {"a": 4.0}


def test_over_delivery_names_the_line():
    so = _so(_line("a", 100))
    with pytest.raises(OverDelivery) as exc:
        lifecycle.check_over_delivery(so, {"a": 60.0}, {"a": 50.0})
    assert exc.value.line_id == "a"
    assert exc.value.requested == 50.0
    assert exc.value.remaining == 40.0
    lifecycle.check_over_delivery(so, {"a": 60.0}, {"a": 40.0})


def test_fractional_quantities_do_not_drift():
    so = _so(_line("a", 0.3))
    delivered = lifecycle.add_quantities({"a": 0.1}, {"a": 0.2})
    lines, status = lifecycle.apply_delivered(so, delivered)
    assert status == "FullyDelivered"
    assert lines[0].remaining_quantity() == 0


@pytest.mark.parametrize("delivered,expected", [
    ({"a": 0, "b": 0}, "Open"),
    ({"a": 60, "b": 0}, "PartiallyDelivered"),
    ({"a": 100, "b": 0}, "PartiallyDelivered"),
    ({"a": 100, "b": 5}, "FullyDelivered"),
])
def test_sales_order_status_derivation(delivered, expected):
    so = _so(_line("a", 100), _line("b", 5))
    _, status = lifecycle.apply_delivered(so, delivered)
    assert status == expected


def test_cancelled_sales_order_status_is_kept():
    so = _so(_line("a", 10), status="Cancelled")
    _, status = lifecycle.apply_delivered(so, {"a": 10})
    assert status == "Cancelled"
    with pytest.raises(InvalidSourceState):
        lifecycle.ensure_deliverable(so)


def test_delivery_transitions():
    lifecycle.check_transition("delivery order", lifecycle.DELIVERY_TRANSITIONS, "Draft", "Dispatched")
    lifecycle.check_transition("delivery order", lifecycle.DELIVERY_TRANSITIONS, "Dispatched", "Delivered")
    for current, target in [("Draft", "Delivered"), ("Draft", "Cancelled"), ("Cancelled", "Draft")]:
        with pytest.raises(IllegalTransition):
            lifecycle.check_transition("delivery order", lifecycle.DELIVERY_TRANSITIONS, current, target)


def test_duplicate_line_ids_are_rejected():
    with pytest.raises(InvalidDocument):
        lifecycle.ensure_unique_lines([_line("a", 1), _line("b", 1), _line("a", 2)], "Sales order SO-1")
    lifecycle.ensure_unique_lines([_line("a", 1), _line("b", 1)], "Sales order SO-1")


def test_conversion_refuses_quotes_with_shared_line_ids():
    q = Quote(status="Accepted", lines=[QuoteLine(id="l1", quantity=100), QuoteLine(id="l1", quantity=10)])
    with pytest.raises(InvalidDocument):
        lifecycle.sales_order_lines_from_quote(q)


def test_revise_lines_keeps_delivered_and_recomputes_totals():
    so = _so(_line("a", 10), _line("b", 5))
    new = [
        SalesOrderLine(id="a", ordered_quantity=8, unit_price_cent=100),
        SalesOrderLine(id="c", ordered_quantity=2, unit_price_cent=50, delivered_quantity=2),
    ]
    lines = lifecycle.revise_lines(so, new, {"a": 8.0, "b": 0.0})
    assert [(ln.id, ln.delivered_quantity, ln.total_cent) for ln in lines] == [("a", 8.0, 800), ("c", 0.0, 100)]


@pytest.mark.parametrize("new,delivered", [
    ([], {}),
    ([SalesOrderLine(id="a", ordered_quantity=3)], {"a": 4.0}),
    ([SalesOrderLine(id="b", ordered_quantity=3)], {"a": 1.0}),
])
def test_revise_lines_refusals(new, delivered):
    with pytest.raises(InvalidDocument):
        lifecycle.revise_lines(_so(_line("a", 10)), new, delivered)


def test_delivery_orders_editable_until_delivered():
    lifecycle.ensure_delivery_editable(DeliveryOrder(sales_order_id="so-1", status="Dispatched"))
    for status in ("Delivered", "Cancelled"):
        with pytest.raises(InvalidSourceState):
            lifecycle.ensure_delivery_editable(DeliveryOrder(sales_order_id="so-1", status=status))
