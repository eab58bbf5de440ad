from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from orderflow.errors import InvalidDocument, NotFound
from orderflow.models.delivery_order import DeliveryOrder
from orderflow.services import lifecycle
from orderflow.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)

# seuls les champs de transport s'éditent ; les quantités passent par suppression / recréation
_EDITABLE_FIELDS = {"shipping_address", "contact", "vehicle_number", "notes", "delivery_date"}


class DeliveryOrderService:
    """Lecture et statut des bons de livraison. Création/suppression : WorkflowService."""

    def __init__(self, db: DocumentStore) -> None:
        self.db = db
        self.repo = db.delivery_orders

    def list_delivery_orders(self) -> List[DeliveryOrder]:
        return self.repo.list()

    def list_by_sales_order(self, sales_order_id: str) -> List[DeliveryOrder]:
        return self.repo.list(lambda d: d.sales_order_id == sales_order_id)

    def get_by_id(self, delivery_id: str) -> Optional[DeliveryOrder]:
        return self.repo.get(delivery_id)

    def require(self, delivery_id: str) -> DeliveryOrder:
        do = self.repo.get(delivery_id)
        if do is None:
            raise NotFound("delivery order", delivery_id)
        return do

    def update_status(self, delivery_id: str, status: str) -> DeliveryOrder:
        with self.db.transaction() as uow:
            do = self.require(delivery_id)
            lifecycle.check_transition("delivery order", lifecycle.DELIVERY_TRANSITIONS, do.status, status)
            updated = uow.update(self.repo, delivery_id, {"status": status})
        logger.info("Delivery order %s: %s -> %s", do.delivery_number, do.status, status)
        return updated

    def update_delivery_order(
        self, delivery_id: str, changes: Union[DeliveryOrder, Mapping[str, Any]]
    ) -> DeliveryOrder:
        """Adresse, contact, véhicule, notes et date ; tant que le bon n'est pas livré."""
        if isinstance(changes, DeliveryOrder):
            patch: Dict[str, Any] = changes.model_dump(include=_EDITABLE_FIELDS)
        else:
            unknown = set(changes) - _EDITABLE_FIELDS
            if unknown:
                raise InvalidDocument(f"Delivery order fields not editable: {', '.join(sorted(unknown))}")
            patch = dict(changes)

        with self.db.transaction() as uow:
            do = self.require(delivery_id)
            lifecycle.ensure_delivery_editable(do)
            updated = uow.update(self.repo, delivery_id, patch)
        logger.info("Delivery order %s updated (%s)", do.delivery_number, ", ".join(sorted(patch)) or "no change")
        return updated
