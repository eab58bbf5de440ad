from __future__ import annotations

import logging
from typing import List, Optional

from orderflow.errors import DocumentInUse, NotFound
from orderflow.models.sales_order import SalesOrder
from orderflow.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)


class SalesOrderService:
    def __init__(self, db: DocumentStore) -> None:
        self.db = db
        self.repo = db.sales_orders

    def list_sales_orders(self) -> List[SalesOrder]:
        return self.repo.list()

    def list_by_quote(self, quote_id: str) -> List[SalesOrder]:
        return self.repo.list(lambda so: so.source_quote_id == quote_id)

    def get_by_id(self, order_id: str) -> Optional[SalesOrder]:
        return self.repo.get(order_id)

    def require(self, order_id: str) -> SalesOrder:
        so = self.repo.get(order_id)
        if so is None:
            raise NotFound("sales order", order_id)
        return so

    def delete_sales_order(self, order_id: str) -> SalesOrder:
        """
        Refusé tant que des bons de livraison y font référence.
        Le devis source reste Converted : la conversion est irréversible.
        """
        with self.db.transaction() as uow:
            so = self.require(order_id)
            linked = self.db.delivery_orders.list(lambda d: d.sales_order_id == order_id)
            if linked:
                numbers = ", ".join(d.delivery_number or d.id for d in linked)
                raise DocumentInUse(
                    f"Sales order {so.order_number} still has delivery orders ({numbers}); delete them first"
                )
            uow.delete(self.repo, order_id)
        if so.source_quote_id:
            logger.warning(
                "Sales order %s deleted; source quote %s stays Converted",
                so.order_number, so.source_quote_id,
            )
        else:
            logger.info("Sales order %s deleted", so.order_number)
        return so
