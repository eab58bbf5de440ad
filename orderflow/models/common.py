from __future__ import annotations
from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
import uuid

def gen_id() -> str:
    return str(uuid.uuid4())

class TimeStamped(BaseModel):
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def touch(self):
        object.__setattr__(self, "updated_at", datetime.utcnow())

class Address(BaseModel):
    line1: str
    line2: str | None = None
    postal_code: str = ""
    city: str = ""
    state: str | None = None

class Contact(BaseModel):
    id: str | None = None
    name: str
    phone: str | None = None
    email: EmailStr | None = None

class LineBase(BaseModel):
    id: str = Field(default_factory=gen_id)
    product_ref: Optional[str] = None
    label: str = ""
    description: Optional[str] = None
    unit: str = ""
    unit_price_cent: int = Field(default=0, ge=0)
    tax_rate: float = Field(default=0.0, ge=0, allow_inf_nan=False)  # en %, ex. 18 pour 18 %

class DocumentLine(LineBase):
    quantity: float = Field(default=1.0, ge=0, allow_inf_nan=False)
    total_cent: int = 0  # hors taxe, recalculé à chaque sauvegarde

def line_total_cent(quantity: float, unit_price_cent: int) -> int:
    return int(round(float(quantity) * int(unit_price_cent)))

def document_totals(lines: Iterable[Tuple[int, float]]) -> Tuple[int, int, int]:
    """(total HT de ligne, taux) -> (sous-total, taxes, total TTC), en centimes."""
    sub_total = 0
    tax = 0.0
    for total_cent, rate in lines:
        sub_total += total_cent
        tax += total_cent * rate / 100
    tax_total = int(round(tax))
    return sub_total, tax_total, sub_total + tax_total

def duplicate_ids(ids: Iterable[str]) -> List[str]:
    seen, dupes = set(), []
    for i in ids:
        if i in seen and i not in dupes:
            dupes.append(i)
        seen.add(i)
    return dupes
