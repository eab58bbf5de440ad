from __future__ import annotations
from pydantic import ConfigDict, Field
from typing import List, Literal, Optional
from datetime import date
from .common import Address, Contact, LineBase, TimeStamped, gen_id

DeliveryStatus = Literal["Draft", "Dispatched", "Delivered", "Cancelled"]

class DeliveryLine(LineBase):
    sales_order_line_id: str
    quantity: float = Field(gt=0, allow_inf_nan=False)

class DeliveryOrder(TimeStamped):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=gen_id)
    delivery_number: Optional[str] = None
    status: DeliveryStatus = "Draft"

    sales_order_id: str
    sales_order_number: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: str = ""

    delivery_date: date = Field(default_factory=date.today)
    shipping_address: Optional[Address] = None
    contact: Optional[Contact] = None
    vehicle_number: Optional[str] = None
    notes: Optional[str] = None

    lines: List[DeliveryLine] = Field(default_factory=list)

    def counts_toward_delivery(self) -> bool:
        return self.status != "Cancelled"
