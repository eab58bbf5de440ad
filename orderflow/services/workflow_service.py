from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from orderflow.errors import InvalidDocument, NotFound
from orderflow.models.common import Address, Contact, document_totals
from orderflow.models.delivery_order import DeliveryOrder
from orderflow.models.quote import Quote
from orderflow.models.sales_order import SalesOrder, SalesOrderLine
from orderflow.services import lifecycle
from orderflow.services.numbering_service import NumberingService
from orderflow.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)

Notifier = Callable[[str, BaseModel], None]


def _as_model(model: type, value: Any, what: str) -> Any:
    if value is None or isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as e:
        raise InvalidDocument(f"Invalid {what}: {e}") from e


class WorkflowService:
    """
    Conversions entre documents. Chaque conversion écrit deux documents dans
    une seule unité de travail : soit les deux écritures passent, soit aucune
    n'est visible.
    """

    def __init__(self, db: DocumentStore, numbering: NumberingService, notifier: Optional[Notifier] = None) -> None:
        self.db = db
        self.numbering = numbering
        self.notifier = notifier

    def _notify(self, kind: str, document: BaseModel) -> None:
        # ne bloque jamais le flux utilisateur (équivalent de l'e-mail d'origine)
        if self.notifier is None:
            return
        try:
            self.notifier(kind, document)
        except Exception:
            logger.warning("Notification for %s failed", kind, exc_info=True)

    # Etape 1 : devis accepté -> commande client
    def create_sales_order_from_quote(self, quote: Union[Quote, str], client_po_number: str) -> tuple[SalesOrder, Quote]:
        quote_id = quote.id if isinstance(quote, Quote) else quote
        with self.db.transaction() as uow:
            # relecture : le statut passé par l'appelant peut être périmé
            current = self.db.quotes.get(quote_id)
            if current is None:
                raise NotFound("quote", quote_id)
            lifecycle.ensure_quote_convertible(current)

            lines = lifecycle.sales_order_lines_from_quote(current)
            sub_total, tax_total, total = document_totals((ln.total_cent, ln.tax_rate) for ln in lines)

            number = self.numbering.allocate("sales_order", current.customer_name)
            so = SalesOrder(
                order_number=number,
                status="Open",
                source_quote_id=current.id,
                quote_number=current.display_number(),
                client_po_number=client_po_number or "",
                customer_id=current.customer_id,
                customer_name=current.customer_name,
                contact=current.contact,
                billing_address=current.billing_address,
                shipping_address=current.shipping_address,
                lines=lines,
                sub_total_cent=sub_total,
                tax_total_cent=tax_total,
                total_cent=total,
                terms=list(current.terms),
                notes=current.notes,
            )
            created = uow.create(self.db.sales_orders, so)
            converted = uow.update(
                self.db.quotes, current.id, {"status": "Converted", "linked_sales_order_id": created.id}
            )
        logger.info("Quote %s converted to sales order %s", current.quote_number, created.order_number)
        self._notify("sales_order", created)
        return created, converted

    # Etape 2 : commande -> bon de livraison (partiel ou total)
    def create_delivery_order(
        self,
        sales_order_id: str,
        items: Iterable[Mapping[str, Any]],
        shipping_address: Optional[Union[Address, Mapping[str, Any]]] = None,
        contact: Optional[Union[Contact, Mapping[str, Any]]] = None,
        vehicle_number: Optional[str] = None,
        notes: Optional[str] = None,
        delivery_date: Optional[date] = None,
    ) -> tuple[DeliveryOrder, SalesOrder]:
        address = _as_model(Address, shipping_address, "shipping address")
        contact_obj = _as_model(Contact, contact, "contact")
        items = list(items or [])

        with self.db.transaction() as uow:
            # 1) lecture fraîche sous verrou : les quantités déjà engagées sont à jour
            so = self.db.sales_orders.get(sales_order_id)
            if so is None:
                raise NotFound("sales order", sales_order_id)
            lifecycle.ensure_deliverable(so)

            # 2) contrôle de sur-livraison
            requested = lifecycle.normalize_delivery_request(so, items)
            existing = self.db.delivery_orders.list(lambda d: d.sales_order_id == so.id)
            delivered = lifecycle.delivered_quantities(so, existing)
            if delivered != so.delivered_by_line():
                logger.warning("Sales order %s delivered quantities out of sync; recomputed from delivery orders",
                               so.order_number)
            lifecycle.check_over_delivery(so, delivered, requested)

            # 3) bon de livraison : construit avant l'allocation pour ne pas brûler de numéro
            try:
                do = DeliveryOrder(
                    status="Draft",
                    sales_order_id=so.id,
                    sales_order_number=so.order_number,
                    customer_id=so.customer_id,
                    customer_name=so.customer_name,
                    delivery_date=delivery_date or date.today(),
                    shipping_address=address or so.shipping_address,
                    contact=contact_obj or so.contact,
                    vehicle_number=vehicle_number,
                    notes=notes,
                    lines=lifecycle.delivery_lines_for(so, requested),
                )
            except ValidationError as e:
                raise InvalidDocument(f"Invalid delivery order: {e}") from e
            number = self.numbering.allocate("delivery_order", so.customer_name)
            created = uow.create(self.db.delivery_orders, do.model_copy(update={"delivery_number": number}))

            # 4) quantités livrées + statut de la commande
            lines, status = lifecycle.apply_delivered(so, lifecycle.add_quantities(delivered, requested))
            updated_so = uow.update(self.db.sales_orders, so.id, {"lines": lines, "status": status})
        logger.info("Delivery order %s created for %s (%s)", created.delivery_number, so.order_number, status)
        self._notify("delivery_order", created)
        return created, updated_so

    def delete_delivery_order(self, delivery_id: str) -> tuple[DeliveryOrder, SalesOrder]:
        with self.db.transaction() as uow:
            do = self.db.delivery_orders.get(delivery_id)
            if do is None:
                raise NotFound("delivery order", delivery_id)
            so = self.db.sales_orders.get(do.sales_order_id)
            if so is None:
                raise NotFound("sales order", do.sales_order_id)

            uow.delete(self.db.delivery_orders, delivery_id)
            remaining = self.db.delivery_orders.list(lambda d: d.sales_order_id == so.id and d.id != delivery_id)
            lines, status = lifecycle.apply_delivered(so, lifecycle.delivered_quantities(so, remaining))
            updated_so = uow.update(self.db.sales_orders, so.id, {"lines": lines, "status": status})
        logger.info("Delivery order %s deleted; %s is now %s", do.delivery_number, so.order_number, status)
        return do, updated_so

    # Révision : nouvelles lignes et/ou nouveau n° de commande client
    def revise_sales_order(
        self,
        order_id: str,
        lines: Iterable[Union[SalesOrderLine, Mapping[str, Any]]],
        client_po_number: Optional[str] = None,
    ) -> SalesOrder:
        try:
            new_lines: List[SalesOrderLine] = [
                ln if isinstance(ln, SalesOrderLine) else SalesOrderLine.model_validate(ln) for ln in lines or []
            ]
        except ValidationError as e:
            raise InvalidDocument(f"Invalid sales order line: {e}") from e

        with self.db.transaction() as uow:
            so = self.db.sales_orders.get(order_id)
            if so is None:
                raise NotFound("sales order", order_id)
            lifecycle.ensure_revisable(so)

            existing = self.db.delivery_orders.list(lambda d: d.sales_order_id == so.id)
            revised = lifecycle.revise_lines(so, new_lines, lifecycle.delivered_quantities(so, existing))
            sub_total, tax_total, total = document_totals((ln.total_cent, ln.tax_rate) for ln in revised)
            patch = {
                "lines": revised,
                "status": lifecycle.derive_sales_order_status(so.status, revised),
                "sub_total_cent": sub_total,
                "tax_total_cent": tax_total,
                "total_cent": total,
            }
            if client_po_number is not None:
                patch["client_po_number"] = client_po_number
            updated = uow.update(self.db.sales_orders, so.id, patch)
        logger.info("Sales order %s revised (%d lines, %s)", so.order_number, len(revised), updated.status)
        return updated
