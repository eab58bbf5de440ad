from __future__ import annotations

from datetime import date

import pytest

from orderflow.errors import IllegalTransition, InvalidDocument, InvalidSourceState, NotFound

from conftest import quote_payload


def test_new_quote_gets_number_draft_status_and_totals(app):
    q = app.quotes.save_quote(quote_payload(qty=3, price_cent=1250, status="Accepted"))
    assert q.quote_number == "QT-1"
    assert q.status == "Draft"
    assert q.lines[0].total_cent == 3750
    assert q.total_cent == 3750


def test_editing_keeps_number_and_status(app):
    q = app.quotes.save_quote(quote_payload())
    app.quotes.update_status(q.id, "Sent")

    edited = q.model_dump()
    edited["lines"][0]["quantity"] = 2
    edited["quote_number"] = "HACKED-1"
    edited["status"] = "Accepted"
    saved = app.quotes.save_quote(edited)

    assert saved.id == q.id
    assert saved.quote_number == "QT-1"
    assert saved.status == "Sent"
    assert saved.total_cent == 2500
    assert len(app.quotes.list_quotes()) == 1
    assert app.numbering.get_scheme("quote").current_number == 2


def test_converted_quote_is_read_only(app, accepted_quote):
    app.workflow.create_sales_order_from_quote(accepted_quote, "PO-1")
    converted = app.quotes.require(accepted_quote.id)
    with pytest.raises(InvalidSourceState):
        app.quotes.save_quote(converted.model_dump())
    with pytest.raises(InvalidSourceState):
        app.quotes.delete_quote(converted.id)


@pytest.mark.parametrize("path,deletable", [
    ([], True),
    (["Sent"], True),
    (["Sent", "Accepted"], True),
    (["Sent", "Rejected"], False),
    (["Sent", "Expired"], False),
])
def test_delete_only_in_non_terminal_states(app, path, deletable):
    q = app.quotes.save_quote(quote_payload())
    for s in path:
        app.quotes.update_status(q.id, s)
    if deletable:
        app.quotes.delete_quote(q.id)
        assert app.quotes.get_by_id(q.id) is None
    else:
        with pytest.raises(InvalidSourceState):
            app.quotes.delete_quote(q.id)
        assert app.quotes.get_by_id(q.id) is not None


def test_illegal_status_update_leaves_quote_unchanged(app):
    q = app.quotes.save_quote(quote_payload())
    with pytest.raises(IllegalTransition):
        app.quotes.update_status(q.id, "Accepted")
    with pytest.raises(IllegalTransition):
        app.quotes.update_status(q.id, "Converted")
    assert app.quotes.require(q.id).status == "Draft"


def test_unknown_quote(app):
    with pytest.raises(NotFound):
        app.quotes.update_status("missing", "Sent")
    with pytest.raises(NotFound):
        app.quotes.delete_quote("missing")


def test_invalid_payload(app):
    with pytest.raises(InvalidDocument):
        app.quotes.save_quote(quote_payload(qty=-1))
    assert app.quotes.list_quotes() == []


def test_expire_quotes(app):
    old = app.quotes.save_quote(quote_payload(expiry_date="2026-01-31"))
    fresh = app.quotes.save_quote(quote_payload(expiry_date="2026-12-31"))
    draft = app.quotes.save_quote(quote_payload(expiry_date="2026-01-01"))
    app.quotes.update_status(old.id, "Sent")
    app.quotes.update_status(fresh.id, "Sent")

    expired = app.quotes.expire_quotes(today=date(2026, 6, 1))

    assert [q.id for q in expired] == [old.id]
    assert app.quotes.require(old.id).status == "Expired"
    assert app.quotes.require(fresh.id).status == "Sent"
    assert app.quotes.require(draft.id).status == "Draft"


def test_list_by_customer(app):
    app.quotes.save_quote(quote_payload())
    app.quotes.save_quote(quote_payload(customer_id="cust-2"))
    assert [q.customer_id for q in app.quotes.list_by_customer("cust-2")] == ["cust-2"]


def test_revision_only_counts_edits_after_draft(app):
    q = app.quotes.save_quote(quote_payload())
    q = app.quotes.save_quote({**q.model_dump(), "notes": "typo fixed"})
    assert q.revision_number == 0
    assert q.display_number() == "QT-1"

    app.quotes.update_status(q.id, "Sent")
    q = app.quotes.save_quote({**q.model_dump(), "notes": "new price", "revision_number": 7})
    q = app.quotes.save_quote(q)
    assert q.revision_number == 2
    assert q.display_number() == "QT-1-Rev2"
    assert q.quote_number == "QT-1"


def test_tax_totals_are_rounded_once_per_document(app):
    payload = quote_payload(qty=1, price_cent=333)
    payload["lines"][0]["tax_rate"] = 5
    payload["lines"].append({"id": "line-2", "quantity": 1, "unit_price_cent": 333, "tax_rate": 5})
    q = app.quotes.save_quote(payload)
    # 16.65 + 16.65 = 33.3 -> 33
    assert (q.sub_total_cent, q.tax_total_cent, q.total_cent) == (666, 33, 699)


@pytest.mark.parametrize("bad", [{"quantity": "nan"}, {"quantity": float("inf")}, {"tax_rate": -1}])
def test_non_finite_or_negative_line_values_are_invalid(app, bad):
    payload = quote_payload()
    payload["lines"][0].update(bad)
    with pytest.raises(InvalidDocument):
        app.quotes.save_quote(payload)
