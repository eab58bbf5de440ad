from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from orderflow.errors import InvalidDocument, NotFound
from orderflow.models.common import document_totals, line_total_cent
from orderflow.models.quote import Quote, QuoteLine
from orderflow.services import lifecycle
from orderflow.services.numbering_service import NumberingService
from orderflow.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)

# champs gérés par le cycle de vie, jamais repris d'une édition
_LIFECYCLE_FIELDS = {"id", "quote_number", "revision_number", "status", "linked_sales_order_id", "created_at"}


# ---------- Helpers ---------- #

def _to_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict):
        return dict(obj)
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    return dict(obj.__dict__)


# ---------- Service ---------- #

class QuoteService:
    def __init__(self, db: DocumentStore, numbering: NumberingService) -> None:
        self.db = db
        self.repo = db.quotes
        self.numbering = numbering

    # ----- Hydratation / totaux ----- #

    def _hydrate(self, data: Quote | Dict[str, Any]) -> Quote:
        try:
            quote = Quote.model_validate(_to_dict(data))
        except ValidationError as e:
            raise InvalidDocument(f"Invalid quote: {e}") from e
        lifecycle.ensure_unique_lines(quote.lines, "Quote")
        return quote

    def recalc_totals(self, quote: Quote) -> Quote:
        lines: List[QuoteLine] = [
            ln.model_copy(update={"total_cent": line_total_cent(ln.quantity, ln.unit_price_cent)})
            for ln in quote.lines
        ]
        sub_total, tax_total, total = document_totals((ln.total_cent, ln.tax_rate) for ln in lines)
        return quote.model_copy(update={
            "lines": lines, "sub_total_cent": sub_total, "tax_total_cent": tax_total, "total_cent": total,
        })

    # ----- Lecture ----- #

    def list_quotes(self) -> List[Quote]:
        return self.repo.list()

    def list_by_customer(self, customer_id: str) -> List[Quote]:
        return self.repo.list(lambda q: q.customer_id == customer_id)

    def get_by_id(self, quote_id: str) -> Optional[Quote]:
        return self.repo.get(quote_id)

    def require(self, quote_id: str) -> Quote:
        q = self.repo.get(quote_id)
        if q is None:
            raise NotFound("quote", quote_id)
        return q

    # ----- Ecriture ----- #

    def save_quote(self, data: Quote | Dict[str, Any]) -> Quote:
        """
        Création si l'id est inconnu (numéro alloué, statut Draft),
        sinon mise à jour des champs éditables (numéro et statut conservés,
        révision incrémentée si le devis a quitté Draft).
        """
        quote = self.recalc_totals(self._hydrate(data))
        with self.db.transaction() as uow:
            existing = self.repo.get(quote.id)
            if existing is not None:
                lifecycle.ensure_quote_mutable(existing, "edit quote")
                patch = quote.model_dump(exclude=_LIFECYCLE_FIELDS)
                if existing.status != "Draft":
                    # un devis déjà envoyé au client devient QT-n-Rev1, Rev2...
                    patch["revision_number"] = existing.revision_number + 1
                updated = uow.update(self.repo, quote.id, patch)
                logger.info("Quote %s saved", updated.display_number())
                return updated

            number = self.numbering.allocate("quote", quote.customer_name)
            new = quote.model_copy(update={
                "quote_number": number, "revision_number": 0, "status": "Draft", "linked_sales_order_id": None,
            })
            created = uow.create(self.repo, new)
        logger.info("Quote %s created", created.quote_number)
        return created

    def update_status(self, quote_id: str, status: str) -> Quote:
        with self.db.transaction() as uow:
            quote = self.require(quote_id)
            lifecycle.check_quote_status_update(quote.status, status)
            updated = uow.update(self.repo, quote_id, {"status": status})
        logger.info("Quote %s: %s -> %s", quote.quote_number, quote.status, status)
        return updated

    def delete_quote(self, quote_id: str) -> Quote:
        with self.db.transaction() as uow:
            quote = self.require(quote_id)
            lifecycle.ensure_quote_mutable(quote, "delete quote")
            uow.delete(self.repo, quote_id)
        logger.info("Quote %s deleted (number %s is not reused)", quote_id, quote.quote_number)
        return quote

    def expire_quotes(self, today: Optional[date] = None) -> List[Quote]:
        """Passe en Expired les devis envoyés dont la date de validité est dépassée."""
        today = today or date.today()
        expired: List[Quote] = []
        for q in self.repo.list(lambda q: q.status == "Sent" and q.is_expired(today)):
            expired.append(self.update_status(q.id, "Expired"))
        return expired
