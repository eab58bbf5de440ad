from __future__ import annotations
from pydantic import ConfigDict, Field
from typing import List, Literal, Optional
from datetime import date
from .common import DocumentLine, TimeStamped, gen_id

PurchaseOrderStatus = Literal["Draft", "Sent", "Received", "Cancelled"]

class PurchaseOrder(TimeStamped):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=gen_id)
    po_number: Optional[str] = None
    status: PurchaseOrderStatus = "Draft"

    vendor_id: Optional[str] = None
    vendor_name: str = ""
    vendor_address: Optional[str] = None
    delivery_address: Optional[str] = None

    order_date: date = Field(default_factory=date.today)
    lines: List[DocumentLine] = Field(default_factory=list)
    sub_total_cent: int = 0
    tax_total_cent: int = 0
    total_cent: int = 0
    notes: Optional[str] = None
