"""
Store client : cache en mémoire des documents de vente pour l'UI.

L'UI ne parle jamais aux services directement. Chaque opération :
loading=True / error=None, appel du service hors de la boucle d'événements,
puis patch du cache (succès) ou message d'erreur (échec, cache intact).
Aucune règle métier ici : tout passe par les services.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar

from orderflow.errors import OrderflowError
from orderflow.models.delivery_order import DeliveryOrder
from orderflow.models.purchase_order import PurchaseOrder
from orderflow.models.quote import Quote
from orderflow.models.sales_order import SalesOrder, SalesOrderLine
from orderflow.services.delivery_order_service import DeliveryOrderService
from orderflow.services.purchase_order_service import PurchaseOrderService
from orderflow.services.quote_service import QuoteService
from orderflow.services.sales_order_service import SalesOrderService
from orderflow.services.workflow_service import WorkflowService

logger = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[["SalesStore"], None]


# ---------- Patch du cache ---------- #

def _upsert(items: List[T], item: T) -> List[T]:
    """Remplace sur place si l'identité existe, sinon ajoute en fin."""
    out = list(items)
    for i, existing in enumerate(out):
        if existing.id == item.id:
            out[i] = item
            return out
    out.append(item)
    return out

def _replace(items: List[T], item: T) -> List[T]:
    """Remplace seulement si l'identité est déjà en cache."""
    return [item if existing.id == item.id else existing for existing in items]

def _remove(items: List[T], obj_id: str) -> List[T]:
    return [x for x in items if x.id != obj_id]


class SalesStore:
    def __init__(
        self,
        quotes: QuoteService,
        sales_orders: SalesOrderService,
        delivery_orders: DeliveryOrderService,
        purchase_orders: PurchaseOrderService,
        workflow: WorkflowService,
    ) -> None:
        self._quote_svc = quotes
        self._so_svc = sales_orders
        self._do_svc = delivery_orders
        self._po_svc = purchase_orders
        self._workflow = workflow

        self.quotes: List[Quote] = []
        self.sales_orders: List[SalesOrder] = []
        self.delivery_orders: List[DeliveryOrder] = []
        self.purchase_orders: List[PurchaseOrder] = []
        self.loading: bool = False
        self.error: Optional[str] = None

        self._listeners: List[Listener] = []

    # ----- Abonnements UI ----- #

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _set(self, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(self, name, value)
        for listener in list(self._listeners):
            listener(self)

    async def _run(self, failure_message: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Tuple[bool, Optional[T]]:
        self._set(loading=True, error=None)
        try:
            result = await asyncio.to_thread(fn, *args, **kwargs)
        except OrderflowError as e:
            logger.warning("%s: %s", failure_message, e)
            self._set(error=f"{failure_message}: {e}", loading=False)
            return False, None
        except Exception:
            self._set(error=failure_message, loading=False)
            raise
        return True, result

    # ----- Chargements ----- #

    async def fetch_quotes(self) -> None:
        ok, quotes = await self._run("Failed to fetch quotes", self._quote_svc.list_quotes)
        if ok:
            self._set(quotes=quotes, loading=False)

    async def fetch_sales_orders(self) -> None:
        ok, orders = await self._run("Failed to fetch sales orders", self._so_svc.list_sales_orders)
        if ok:
            self._set(sales_orders=orders, loading=False)

    async def fetch_delivery_orders(self) -> None:
        ok, orders = await self._run("Failed to fetch delivery orders", self._do_svc.list_delivery_orders)
        if ok:
            self._set(delivery_orders=orders, loading=False)

    async def fetch_purchase_orders(self) -> None:
        ok, orders = await self._run("Failed to fetch purchase orders", self._po_svc.list_purchase_orders)
        if ok:
            self._set(purchase_orders=orders, loading=False)

    # ----- Devis ----- #

    async def save_quote(self, quote: Quote | Dict[str, Any]) -> Optional[Quote]:
        ok, saved = await self._run("Failed to save quote", self._quote_svc.save_quote, quote)
        if ok:
            self._set(quotes=_upsert(self.quotes, saved), loading=False)
        return saved

    async def update_quote_status(self, quote_id: str, status: str) -> Optional[Quote]:
        ok, updated = await self._run("Failed to update quote status", self._quote_svc.update_status, quote_id, status)
        if ok:
            self._set(quotes=_replace(self.quotes, updated), loading=False)
        return updated

    async def delete_quote(self, quote_id: str) -> bool:
        ok, _ = await self._run("Failed to delete quote", self._quote_svc.delete_quote, quote_id)
        if ok:
            self._set(quotes=_remove(self.quotes, quote_id), loading=False)
        return ok

    # ----- Commandes ----- #

    async def create_sales_order_from_quote(self, quote: Quote | str, client_po_number: str) -> Optional[SalesOrder]:
        ok, result = await self._run(
            "Failed to create sales order", self._workflow.create_sales_order_from_quote, quote, client_po_number
        )
        if not ok:
            return None
        so, converted = result
        self._set(
            sales_orders=_upsert(self.sales_orders, so),
            quotes=_replace(self.quotes, converted),
            loading=False,
        )
        return so

    async def delete_sales_order(self, order_id: str) -> bool:
        ok, _ = await self._run("Failed to delete sales order", self._so_svc.delete_sales_order, order_id)
        if ok:
            self._set(sales_orders=_remove(self.sales_orders, order_id), loading=False)
        return ok

    async def revise_sales_order(
        self,
        order_id: str,
        lines: Iterable[SalesOrderLine | Mapping[str, Any]],
        client_po_number: Optional[str] = None,
    ) -> Optional[SalesOrder]:
        ok, revised = await self._run(
            "Failed to revise sales order", self._workflow.revise_sales_order, order_id, list(lines or []),
            client_po_number,
        )
        if ok:
            self._set(sales_orders=_replace(self.sales_orders, revised), loading=False)
        return revised

    # ----- Livraisons ----- #

    async def create_delivery_order(
        self,
        sales_order_id: str,
        delivery_items: Iterable[Mapping[str, Any]],
        shipping_address: Any = None,
        contact: Any = None,
        vehicle_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[DeliveryOrder]:
        ok, result = await self._run(
            "Failed to create delivery order",
            self._workflow.create_delivery_order,
            sales_order_id,
            list(delivery_items or []),
            shipping_address=shipping_address,
            contact=contact,
            vehicle_number=vehicle_number,
            notes=notes,
        )
        if not ok:
            return None
        do, so = result
        self._set(
            delivery_orders=_upsert(self.delivery_orders, do),
            sales_orders=_replace(self.sales_orders, so),
            loading=False,
        )
        return do

    async def update_delivery_order(
        self, delivery_id: str, changes: DeliveryOrder | Mapping[str, Any]
    ) -> Optional[DeliveryOrder]:
        ok, updated = await self._run(
            "Failed to update delivery order", self._do_svc.update_delivery_order, delivery_id, changes
        )
        if ok:
            self._set(delivery_orders=_replace(self.delivery_orders, updated), loading=False)
        return updated

    async def delete_delivery_order(self, delivery_id: str) -> bool:
        ok, result = await self._run(
            "Failed to delete delivery order", self._workflow.delete_delivery_order, delivery_id
        )
        if not ok:
            return False
        _, so = result
        self._set(
            delivery_orders=_remove(self.delivery_orders, delivery_id),
            sales_orders=_replace(self.sales_orders, so),
            loading=False,
        )
        return True

    # ----- Achats ----- #

    async def save_purchase_order(self, order: PurchaseOrder | Dict[str, Any]) -> Optional[PurchaseOrder]:
        ok, saved = await self._run("Failed to save purchase order", self._po_svc.save_purchase_order, order)
        if ok:
            self._set(purchase_orders=_upsert(self.purchase_orders, saved), loading=False)
        return saved

    async def update_purchase_order_status(self, po_id: str, status: str) -> Optional[PurchaseOrder]:
        ok, updated = await self._run(
            "Failed to update purchase order status", self._po_svc.update_status, po_id, status
        )
        if ok:
            self._set(purchase_orders=_replace(self.purchase_orders, updated), loading=False)
        return updated

    async def delete_purchase_order(self, po_id: str) -> bool:
        ok, _ = await self._run("Failed to delete purchase order", self._po_svc.delete_purchase_order, po_id)
        if ok:
            self._set(purchase_orders=_remove(self.purchase_orders, po_id), loading=False)
        return ok
