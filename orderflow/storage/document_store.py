"""
Point d'accès unique au stockage : un repository typé par type de document,
plus un verrou d'écriture et des unités de travail compensées.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Mapping, Optional, Tuple, Union

from orderflow.errors import NotFound, OrderflowError
from orderflow.models.delivery_order import DeliveryOrder
from orderflow.models.numbering import NumberingScheme
from orderflow.models.purchase_order import PurchaseOrder
from orderflow.models.quote import Quote
from orderflow.models.sales_order import SalesOrder
from orderflow.storage.json_repo import JsonRepository
from orderflow.storage.repo import M, MemoryRepository, Repository

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Ecritures groupées : chaque écriture appliquée empile son action inverse.
    En cas d'échec, on dépile dans l'ordre inverse (rollback).
    """

    def __init__(self) -> None:
        self._undo: List[Tuple[str, Callable[[], Any]]] = []

    def create(self, repo: Repository[M], item: M) -> M:
        created = repo.create(item)
        key = getattr(created, repo.key)
        self._undo.append((f"delete {repo.entity_name} {key}", lambda: repo.delete(key)))
        return created

    def update(self, repo: Repository[M], obj_id: Any, patch: Mapping[str, Any]) -> M:
        before = repo.get(obj_id)
        if before is None:
            raise NotFound(repo.entity_name, str(obj_id))
        after = repo.update(obj_id, patch)
        self._undo.append((f"restore {repo.entity_name} {obj_id}", lambda: repo.upsert(before)))
        return after

    def delete(self, repo: Repository[M], obj_id: Any) -> Optional[M]:
        before = repo.get(obj_id)
        if before is None:
            return None
        position = repo.position(obj_id)
        repo.delete(obj_id)
        self._undo.append((f"re-create {repo.entity_name} {obj_id}", lambda: repo.restore(before, position)))
        return before

    def rollback(self) -> None:
        for label, action in reversed(self._undo):
            try:
                action()
            except OrderflowError:
                logger.exception("Compensation failed (%s); store needs manual repair", label)
        self._undo.clear()

    def commit(self) -> None:
        self._undo.clear()


class DocumentStore:
    def __init__(
        self,
        quotes: Repository[Quote],
        sales_orders: Repository[SalesOrder],
        delivery_orders: Repository[DeliveryOrder],
        purchase_orders: Repository[PurchaseOrder],
        numbering: Repository[NumberingScheme],
    ) -> None:
        self.quotes = quotes
        self.sales_orders = sales_orders
        self.delivery_orders = delivery_orders
        self.purchase_orders = purchase_orders
        self.numbering = numbering
        self._write_lock = threading.RLock()

    @classmethod
    def open_json(
        cls,
        data_dir: Union[str, Path],
        *,
        backup_enabled: bool = True,
        backup_keep: int = 5,
    ) -> "DocumentStore":
        base = Path(data_dir)
        opts = {"backup_enabled": backup_enabled, "backup_keep": backup_keep}
        return cls(
            quotes=JsonRepository(base / "quotes.json", Quote, "quote", **opts),
            sales_orders=JsonRepository(base / "sales_orders.json", SalesOrder, "sales order", **opts),
            delivery_orders=JsonRepository(base / "delivery_orders.json", DeliveryOrder, "delivery order", **opts),
            purchase_orders=JsonRepository(base / "purchase_orders.json", PurchaseOrder, "purchase order", **opts),
            numbering=JsonRepository(
                base / "numbering.json", NumberingScheme, "numbering scheme", key="document_type", **opts
            ),
        )

    @classmethod
    def in_memory(cls) -> "DocumentStore":
        return cls(
            quotes=MemoryRepository(Quote, "quote"),
            sales_orders=MemoryRepository(SalesOrder, "sales order"),
            delivery_orders=MemoryRepository(DeliveryOrder, "delivery order"),
            purchase_orders=MemoryRepository(PurchaseOrder, "purchase order"),
            numbering=MemoryRepository(NumberingScheme, "numbering scheme", key="document_type"),
        )

    @contextmanager
    def transaction(self) -> Iterator[UnitOfWork]:
        """
        Unité de travail sérialisée : les lectures faites à l'intérieur voient
        le dernier état validé, et tout échec annule les écritures déjà faites.
        """
        with self._write_lock:
            uow = UnitOfWork()
            try:
                yield uow
            except Exception:
                uow.rollback()
                raise
            uow.commit()
