from __future__ import annotations
from pydantic import ConfigDict, Field
from typing import Dict, List, Literal, Optional
from datetime import date
from .common import Address, Contact, LineBase, TimeStamped, gen_id

SalesOrderStatus = Literal["Open", "PartiallyDelivered", "FullyDelivered", "Cancelled"]

class SalesOrderLine(LineBase):
    ordered_quantity: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    delivered_quantity: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    total_cent: int = 0  # hors taxe, sur la quantité commandée

    def remaining_quantity(self) -> float:
        return round(max(0.0, self.ordered_quantity - self.delivered_quantity), 6)

    def is_fully_delivered(self) -> bool:
        return self.remaining_quantity() == 0

class SalesOrder(TimeStamped):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=gen_id)
    order_number: Optional[str] = None
    status: SalesOrderStatus = "Open"

    # relation seulement : une commande peut exister sans devis
    source_quote_id: Optional[str] = None
    quote_number: Optional[str] = None
    client_po_number: str = ""

    customer_id: Optional[str] = None
    customer_name: str = ""
    contact: Optional[Contact] = None
    billing_address: Optional[Address] = None
    shipping_address: Optional[Address] = None

    order_date: date = Field(default_factory=date.today)
    lines: List[SalesOrderLine] = Field(default_factory=list)
    sub_total_cent: int = 0
    tax_total_cent: int = 0
    total_cent: int = 0
    terms: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

    def line(self, line_id: str) -> Optional[SalesOrderLine]:
        for ln in self.lines:
            if ln.id == line_id:
                return ln
        return None

    def delivered_by_line(self) -> Dict[str, float]:
        return {ln.id: ln.delivered_quantity for ln in self.lines}
