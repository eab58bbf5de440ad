from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from orderflow.errors import InvalidDocument, InvalidSourceState, NotFound
from orderflow.models.common import document_totals, line_total_cent
from orderflow.models.purchase_order import PurchaseOrder
from orderflow.services import lifecycle
from orderflow.services.numbering_service import NumberingService
from orderflow.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)

_LIFECYCLE_FIELDS = {"id", "po_number", "status", "created_at"}


class PurchaseOrderService:
    """Bons de commande fournisseur : même schéma que les devis (numéro, statut, édition)."""

    def __init__(self, db: DocumentStore, numbering: NumberingService) -> None:
        self.db = db
        self.repo = db.purchase_orders
        self.numbering = numbering

    def _hydrate(self, data: PurchaseOrder | Dict[str, Any]) -> PurchaseOrder:
        try:
            po = PurchaseOrder.model_validate(data.model_dump() if hasattr(data, "model_dump") else dict(data))
        except ValidationError as e:
            raise InvalidDocument(f"Invalid purchase order: {e}") from e
        lifecycle.ensure_unique_lines(po.lines, "Purchase order")
        lines = [ln.model_copy(update={"total_cent": line_total_cent(ln.quantity, ln.unit_price_cent)}) for ln in po.lines]
        sub_total, tax_total, total = document_totals((ln.total_cent, ln.tax_rate) for ln in lines)
        return po.model_copy(update={
            "lines": lines, "sub_total_cent": sub_total, "tax_total_cent": tax_total, "total_cent": total,
        })

    def list_purchase_orders(self) -> List[PurchaseOrder]:
        return self.repo.list()

    def get_by_id(self, po_id: str) -> Optional[PurchaseOrder]:
        return self.repo.get(po_id)

    def require(self, po_id: str) -> PurchaseOrder:
        po = self.repo.get(po_id)
        if po is None:
            raise NotFound("purchase order", po_id)
        return po

    def save_purchase_order(self, data: PurchaseOrder | Dict[str, Any]) -> PurchaseOrder:
        po = self._hydrate(data)
        with self.db.transaction() as uow:
            existing = self.repo.get(po.id)
            if existing is not None:
                if existing.status not in lifecycle.PURCHASE_MUTABLE_STATES:
                    raise InvalidSourceState("purchase order", existing.status, "edit purchase order")
                return uow.update(self.repo, po.id, po.model_dump(exclude=_LIFECYCLE_FIELDS))

            number = self.numbering.allocate("purchase_order", po.vendor_name)
            created = uow.create(self.repo, po.model_copy(update={"po_number": number, "status": "Draft"}))
        logger.info("Purchase order %s created", created.po_number)
        return created

    def update_status(self, po_id: str, status: str) -> PurchaseOrder:
        with self.db.transaction() as uow:
            po = self.require(po_id)
            lifecycle.check_transition("purchase order", lifecycle.PURCHASE_TRANSITIONS, po.status, status)
            updated = uow.update(self.repo, po_id, {"status": status})
        logger.info("Purchase order %s: %s -> %s", po.po_number, po.status, status)
        return updated

    def delete_purchase_order(self, po_id: str) -> PurchaseOrder:
        with self.db.transaction() as uow:
            po = self.require(po_id)
            if po.status not in lifecycle.PURCHASE_MUTABLE_STATES:
                raise InvalidSourceState("purchase order", po.status, "delete purchase order")
            uow.delete(self.repo, po_id)
        logger.info("Purchase order %s deleted", po.po_number)
        return po
