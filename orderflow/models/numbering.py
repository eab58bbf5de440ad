from __future__ import annotations
import re
from pydantic import BaseModel, Field
from typing import Literal, Optional

DocumentType = Literal["quote", "sales_order", "delivery_order", "purchase_order"]
DOCUMENT_TYPES = ("quote", "sales_order", "delivery_order", "purchase_order")

CUSTOMER_TOKEN = "{CUST}"


def customer_token(customer_name: Optional[str]) -> str:
    """4 premiers caractères du client, sans espaces, en majuscules."""
    return re.sub(r"\s+", "", customer_name or "")[:4].upper()


class NumberingScheme(BaseModel):
    document_type: DocumentType
    prefix: str
    current_number: int = Field(default=1, ge=1)
    suffix: str = ""
    pad_width: int = Field(default=0, ge=0)  # 0 => entier brut (QT-1)

    def format(self, number: int, customer_name: Optional[str] = None) -> str:
        token = customer_token(customer_name)
        prefix = self.prefix.replace(CUSTOMER_TOKEN, token)
        suffix = self.suffix.replace(CUSTOMER_TOKEN, token)
        body = f"{number:0{self.pad_width}d}" if self.pad_width else str(number)
        return f"{prefix}{body}{suffix}"

    def preview(self, customer_name: Optional[str] = None) -> str:
        return self.format(self.current_number, customer_name)
