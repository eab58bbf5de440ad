"""
Export HTML / PDF des documents (devis, commande, bon de livraison, bon de commande).

HTML via Jinja2 (templates/pdf/*.html), PDF via wkhtmltopdf (pdfkit) en
priorité, sinon fallback WeasyPrint.
"""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from shutil import which
from typing import Any, Dict, Optional, Union

import pdfkit
from jinja2 import Environment, FileSystemLoader, select_autoescape

from orderflow.config import AppSettings
from orderflow.models.delivery_order import DeliveryOrder
from orderflow.models.purchase_order import PurchaseOrder
from orderflow.models.quote import Quote
from orderflow.models.sales_order import SalesOrder

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates" / "pdf"

Document = Union[Quote, SalesOrder, DeliveryOrder, PurchaseOrder]

# type -> (template, titre, attribut du numéro)
_LAYOUTS = {
    Quote: ("quote.html", "Quote", "quote_number"),
    SalesOrder: ("sales_order.html", "Sales Order", "order_number"),
    DeliveryOrder: ("delivery_order.html", "Delivery Order", "delivery_number"),
    PurchaseOrder: ("purchase_order.html", "Purchase Order", "po_number"),
}


# ---------- Formats ----------
def _cent_to_str(cents: Any) -> str:
    try:
        return f"{int(cents or 0) / 100:.2f}"
    except (TypeError, ValueError):
        return "0.00"

def _qty(value: Any) -> str:
    try:
        return f"{float(value):g}"
    except (TypeError, ValueError):
        return ""

def _slug(text: str) -> str:
    text = (text or "").strip()
    text = re.sub(r'[\\/:*?"<>|\n\r\t]', "_", text)
    text = re.sub(r"\s+", " ", text)
    return text or "document"


# ---------- PDF helpers ----------
def _find_wkhtmltopdf(configured: Optional[str] = None) -> Optional[str]:
    """
    Localise wkhtmltopdf :
    - chemin configuré (settings.json pdf.wkhtmltopdf_path / WKHTMLTOPDF_PATH)
    - variable d'env WKHTMLTOPDF
    - PATH
    """
    for candidate in (configured, os.environ.get("WKHTMLTOPDF")):
        if candidate:
            path = os.path.normpath(candidate.strip().strip('"').strip("'"))
            if Path(path).is_file():
                return path
    return which("wkhtmltopdf")

def _render_pdf_with_weasyprint(html: str, out_path: Path, base_url: Optional[str]) -> None:
    """Fallback WeasyPrint (si wkhtmltopdf absent ou en échec)."""
    try:
        from weasyprint import HTML, CSS
    except ImportError as e:
        raise RuntimeError(
            "wkhtmltopdf not found and WeasyPrint is not installed. "
            "Install the 'pdf' extra (pip install orderflow[pdf]) or configure wkhtmltopdf."
        ) from e

    css_file = TEMPLATES_DIR / "stylesheet.css"
    styles = [CSS(filename=str(css_file))] if css_file.exists() else None
    HTML(string=html, base_url=base_url).write_pdf(str(out_path), stylesheets=styles)


# ---------- Service ----------
class ExportService:
    def __init__(self, settings: AppSettings) -> None:
        self.settings = settings
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self.env.filters["cents"] = _cent_to_str
        self.env.filters["qty"] = _qty

    def _layout(self, document: Document):
        for cls, layout in _LAYOUTS.items():
            if isinstance(document, cls):
                return layout
        raise TypeError(f"Cannot export {type(document).__name__}")

    def document_number(self, document: Document) -> str:
        if isinstance(document, Quote):
            return document.display_number()
        _, _, attr = self._layout(document)
        return getattr(document, attr, None) or document.id

    def render_html(self, document: Document) -> str:
        template, title, _ = self._layout(document)
        company = self.settings.company
        ctx: Dict[str, Any] = {
            "doc": document,
            "title": title,
            "number": self.document_number(document),
            "company": company,
        }
        return self.env.get_template(template).render(**ctx)

    def export_pdf(self, document: Document, out_dir: Optional[Union[str, Path]] = None) -> Path:
        html = self.render_html(document)
        _, title, _ = self._layout(document)

        exports_dir = Path(out_dir) if out_dir else self.settings.exports_dir / _slug(title).lower().replace(" ", "_")
        exports_dir.mkdir(parents=True, exist_ok=True)
        party = getattr(document, "customer_name", None) or getattr(document, "vendor_name", None) or ""
        out_path = exports_dir / f"{_slug(self.document_number(document))} ({_slug(party)}).pdf"
        base_url = str(TEMPLATES_DIR.resolve())

        # 1) wkhtmltopdf d'abord
        wkhtml = _find_wkhtmltopdf(self.settings.pdf.wkhtmltopdf_path)
        if wkhtml:
            try:
                config = pdfkit.configuration(wkhtmltopdf=wkhtml)
                options = {"enable-local-file-access": None, "quiet": "", "encoding": "UTF-8"}
                css_path = str((TEMPLATES_DIR / "stylesheet.css").resolve())
                pdfkit.from_string(html, str(out_path), options=options, configuration=config, css=css_path)
                logger.info("Exported %s", out_path)
                return out_path
            except OSError as e:
                logger.warning("wkhtmltopdf failed (%s). Falling back to WeasyPrint...", e)

        # 2) Fallback WeasyPrint
        _render_pdf_with_weasyprint(html, out_path, base_url=base_url)
        logger.info("Exported %s", out_path)
        return out_path
