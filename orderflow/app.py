from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from orderflow.config import AppSettings, load_settings
from orderflow.logging_setup import configure_logging
from orderflow.services.delivery_order_service import DeliveryOrderService
from orderflow.services.export_service import ExportService
from orderflow.services.numbering_service import NumberingService
from orderflow.services.purchase_order_service import PurchaseOrderService
from orderflow.services.quote_service import QuoteService
from orderflow.services.sales_order_service import SalesOrderService
from orderflow.services.workflow_service import Notifier, WorkflowService
from orderflow.storage.document_store import DocumentStore
from orderflow.store.sales_store import SalesStore


class Application:
    """Assemble stockage, services et store (ce que l'UI reçoit au démarrage)."""

    def __init__(self, settings: AppSettings, db: DocumentStore, notifier: Optional[Notifier] = None) -> None:
        self.settings = settings
        self.db = db

        self.numbering = NumberingService(db.numbering, settings.numbering)
        self.numbering.provision_defaults()

        self.quotes = QuoteService(db, self.numbering)
        self.sales_orders = SalesOrderService(db)
        self.delivery_orders = DeliveryOrderService(db)
        self.purchase_orders = PurchaseOrderService(db, self.numbering)
        self.workflow = WorkflowService(db, self.numbering, notifier=notifier)
        self.exports = ExportService(settings)

        self.store = SalesStore(
            self.quotes, self.sales_orders, self.delivery_orders, self.purchase_orders, self.workflow
        )


def create_app(
    data_dir: Optional[Union[str, Path]] = None,
    *,
    in_memory: bool = False,
    notifier: Optional[Notifier] = None,
    setup_logging: bool = True,
) -> Application:
    if setup_logging:
        configure_logging()
    settings = load_settings(data_dir)
    if in_memory:
        db = DocumentStore.in_memory()
    else:
        db = DocumentStore.open_json(
            settings.data_dir,
            backup_enabled=settings.storage.backup_enabled,
            backup_keep=settings.storage.backup_keep,
        )
    return Application(settings, db, notifier=notifier)
