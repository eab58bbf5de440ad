from __future__ import annotations
from pydantic import ConfigDict, Field
from typing import List, Literal, Optional
from datetime import date
from .common import Address, Contact, DocumentLine, TimeStamped, gen_id

QuoteStatus = Literal["Draft", "Sent", "Accepted", "Rejected", "Expired", "Converted"]

class QuoteLine(DocumentLine):
    pass

class Quote(TimeStamped):
    model_config = ConfigDict(extra="ignore")  # tolère d'anciennes clés dans les JSON

    id: str = Field(default_factory=gen_id)
    quote_number: Optional[str] = None
    revision_number: int = Field(default=0, ge=0)
    status: QuoteStatus = "Draft"

    customer_id: Optional[str] = None
    customer_name: str = ""
    contact: Optional[Contact] = None
    billing_address: Optional[Address] = None
    shipping_address: Optional[Address] = None

    issue_date: date = Field(default_factory=date.today)
    expiry_date: Optional[date] = None

    lines: List[QuoteLine] = Field(default_factory=list)
    sub_total_cent: int = 0
    tax_total_cent: int = 0
    total_cent: int = 0

    terms: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

    # renseigné à la conversion, jamais effacé
    linked_sales_order_id: Optional[str] = None

    def display_number(self) -> str:
        """QT-12, puis QT-12-Rev1, QT-12-Rev2... après révision."""
        number = self.quote_number or self.id
        return f"{number}-Rev{self.revision_number}" if self.revision_number else number

    def is_expired(self, today: date) -> bool:
        return self.expiry_date is not None and self.expiry_date < today
