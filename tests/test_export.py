from __future__ import annotations

from pathlib import Path

import pytest

from orderflow.services import export_service
from orderflow.services.export_service import ExportService

from conftest import quote_payload


@pytest.fixture
def exporter(app):
    return ExportService(app.settings)


def test_quote_html_lists_lines_and_totals(app, exporter):
    q = app.quotes.save_quote(quote_payload(qty=3, price_cent=1250, terms=["Payment at 30 days"]))
    html = exporter.render_html(q)

    assert f"Quote {q.quote_number}" in html
    assert "Steel bracket" in html
    assert "12.50" in html
    assert "37.50" in html
    assert "Payment at 30 days" in html


def test_html_is_escaped(app, exporter):
    q = app.quotes.save_quote(quote_payload(notes="x", customer_name="<b>Evil</b>"))
    html = exporter.render_html(q)
    assert "<b>Evil</b>" not in html
    assert "&lt;b&gt;Evil&lt;/b&gt;" in html


def test_delivery_order_html(app, exporter, sales_order):
    do, _ = app.workflow.create_delivery_order(
        sales_order.id, [{"sales_order_line_id": "line-1", "quantity": 40}], vehicle_number="AB-123-CD"
    )
    html = exporter.render_html(do)
    assert do.delivery_number in html
    assert sales_order.order_number in html
    assert "AB-123-CD" in html
    assert ">40<" in html


def test_unknown_document_type(exporter):
    with pytest.raises(TypeError):
        exporter.render_html(object())


def test_export_pdf_uses_wkhtmltopdf(app, exporter, monkeypatch, tmp_path):
    calls = {}

    def fake_from_string(html, out_path, options=None, configuration=None, css=None):
        calls["html"] = html
        Path(out_path).write_bytes(b"%PDF-1.4")
        return True

    monkeypatch.setattr(export_service, "_find_wkhtmltopdf", lambda configured=None: "/usr/bin/wkhtmltopdf")
    monkeypatch.setattr(export_service.pdfkit, "configuration", lambda **kw: kw)
    monkeypatch.setattr(export_service.pdfkit, "from_string", fake_from_string)

    q = app.quotes.save_quote(quote_payload())
    out = exporter.export_pdf(q, tmp_path / "out")

    assert out.exists()
    assert out.name == f"{q.quote_number} (Acme Corp).pdf"
    assert q.quote_number in calls["html"]


def test_export_pdf_falls_back_to_weasyprint(app, exporter, monkeypatch, tmp_path):
    rendered = []

    def failing_from_string(*args, **kwargs):
        raise OSError("wkhtmltopdf exited with code 1")

    monkeypatch.setattr(export_service, "_find_wkhtmltopdf", lambda configured=None: "/usr/bin/wkhtmltopdf")
    monkeypatch.setattr(export_service.pdfkit, "configuration", lambda **kw: kw)
    monkeypatch.setattr(export_service.pdfkit, "from_string", failing_from_string)
    monkeypatch.setattr(
        export_service, "_render_pdf_with_weasyprint", lambda html, out_path, base_url: rendered.append(out_path)
    )

    q = app.quotes.save_quote(quote_payload())
    out = exporter.export_pdf(q, tmp_path)
    assert rendered == [out]


def test_export_pdf_default_directory(app, monkeypatch):
    monkeypatch.setattr(export_service, "_find_wkhtmltopdf", lambda configured=None: None)
    monkeypatch.setattr(
        export_service, "_render_pdf_with_weasyprint", lambda html, out_path, base_url: out_path.write_bytes(b"")
    )
    exporter = ExportService(app.settings)
    po = app.purchase_orders.save_purchase_order({"vendor_name": "Steel Inc"})
    out = exporter.export_pdf(po)
    assert out.parent == app.settings.exports_dir / "purchase_order"
    assert out.name == f"{po.po_number} (Steel Inc).pdf"


def test_revised_quote_number_and_tax_breakdown(app, exporter):
    payload = quote_payload(qty=2, price_cent=1000)
    payload["lines"][0]["tax_rate"] = 20
    q = app.quotes.save_quote(payload)
    app.quotes.update_status(q.id, "Sent")
    q = app.quotes.save_quote(q)

    html = exporter.render_html(q)
    assert "Quote QT-1-Rev1" in html
    assert "Subtotal 20.00" in html
    assert "Tax 4.00" in html
    assert "Total 24.00" in html
    assert exporter.document_number(q) == "QT-1-Rev1"
