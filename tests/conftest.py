from __future__ import annotations

import pytest

from orderflow.app import create_app


@pytest.fixture
def app(tmp_path):
    """Application complète sur stockage mémoire."""
    return create_app(tmp_path / "data", in_memory=True, setup_logging=False)


@pytest.fixture
def json_app(tmp_path):
    """Application complète sur fichiers JSON dans tmp_path."""
    return create_app(tmp_path / "data", setup_logging=False)


def quote_payload(qty: float = 100, price_cent: int = 1250, **extra):
    payload = {
        "customer_id": "cust-1",
        "customer_name": "Acme Corp",
        "lines": [
            {"id": "line-1", "product_ref": "P-100", "label": "Steel bracket", "quantity": qty,
             "unit": "pcs", "unit_price_cent": price_cent},
        ],
    }
    payload.update(extra)
    return payload


@pytest.fixture
def accepted_quote(app):
    q = app.quotes.save_quote(quote_payload())
    app.quotes.update_status(q.id, "Sent")
    return app.quotes.update_status(q.id, "Accepted")


@pytest.fixture
def sales_order(app, accepted_quote):
    so, _ = app.workflow.create_sales_order_from_quote(accepted_quote, "PO-55")
    return so
