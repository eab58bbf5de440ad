"""
Règles du cycle de vie : transitions de statut autorisées, préconditions de
conversion et comptabilité des quantités livrées.

Fonctions pures : aucune ne lit ni n'écrit le stockage. Le WorkflowService
leur passe des lectures fraîches et persiste ce qu'elles calculent.
"""
from __future__ import annotations

import math
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Sequence, Tuple, Union

from orderflow.errors import IllegalTransition, InvalidDocument, InvalidSourceState, OverDelivery
from orderflow.models.common import LineBase, duplicate_ids, line_total_cent
from orderflow.models.delivery_order import DeliveryLine, DeliveryOrder
from orderflow.models.quote import Quote
from orderflow.models.sales_order import SalesOrder, SalesOrderLine, SalesOrderStatus

# ---------- Machines à états ---------- #

QUOTE_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "Draft": frozenset({"Sent"}),
    "Sent": frozenset({"Accepted", "Rejected", "Expired"}),
    "Accepted": frozenset({"Converted"}),
    "Rejected": frozenset(),
    "Expired": frozenset(),
    "Converted": frozenset(),
}

# Cancelled n'a volontairement aucune règle d'entrée ni de sortie
DELIVERY_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "Draft": frozenset({"Dispatched"}),
    "Dispatched": frozenset({"Delivered"}),
    "Delivered": frozenset(),
    "Cancelled": frozenset(),
}

PURCHASE_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "Draft": frozenset({"Sent"}),
    "Sent": frozenset({"Received"}),
    "Received": frozenset(),
    "Cancelled": frozenset(),
}

QUOTE_MUTABLE_STATES = frozenset({"Draft", "Sent", "Accepted"})
PURCHASE_MUTABLE_STATES = frozenset({"Draft", "Sent"})
DELIVERY_MUTABLE_STATES = frozenset({"Draft", "Dispatched"})

_QTY_PRECISION = 6


def check_transition(entity_name: str, table: Mapping[str, FrozenSet[str]], current: str, target: str) -> None:
    if target not in table:
        raise IllegalTransition(entity_name, current, target)
    if target not in table.get(current, frozenset()):
        raise IllegalTransition(entity_name, current, target)


def check_quote_status_update(current: str, target: str) -> None:
    # Converted n'est atteint que par la création d'une commande
    if target == "Converted":
        raise IllegalTransition("quote", current, target)
    check_transition("quote", QUOTE_TRANSITIONS, current, target)


def ensure_quote_mutable(quote: Quote, action: str) -> None:
    if quote.status not in QUOTE_MUTABLE_STATES:
        raise InvalidSourceState("quote", quote.status, action)


def ensure_quote_convertible(quote: Quote) -> None:
    if quote.status != "Accepted":
        raise InvalidSourceState("quote", quote.status, "create a sales order")


def ensure_deliverable(so: SalesOrder) -> None:
    if so.status == "Cancelled":
        raise InvalidSourceState("sales order", so.status, "create a delivery order")


def ensure_delivery_editable(do: DeliveryOrder) -> None:
    if do.status not in DELIVERY_MUTABLE_STATES:
        raise InvalidSourceState("delivery order", do.status, "edit delivery order")


def ensure_unique_lines(lines: Sequence[LineBase], owner: str) -> None:
    """Les quantités livrées sont comptées par id de ligne : un id ne peut servir qu'une fois."""
    dupes = duplicate_ids(ln.id for ln in lines)
    if dupes:
        raise InvalidDocument(f"{owner} has duplicate line ids: {', '.join(dupes)}")


# ---------- Conversion devis -> commande ---------- #

def sales_order_lines_from_quote(quote: Quote) -> List[SalesOrderLine]:
    # les devis déjà stockés n'ont pas tous été validés à l'enregistrement
    ensure_unique_lines(quote.lines, f"Quote {quote.display_number()}")
    return [
        SalesOrderLine(
            id=ln.id,
            product_ref=ln.product_ref,
            label=ln.label,
            description=ln.description,
            unit=ln.unit,
            unit_price_cent=ln.unit_price_cent,
            tax_rate=ln.tax_rate,
            ordered_quantity=ln.quantity,
            delivered_quantity=0.0,
            total_cent=line_total_cent(ln.quantity, ln.unit_price_cent),
        )
        for ln in quote.lines
    ]


# ---------- Livraisons ---------- #

def _item_value(item: Union[Mapping[str, Any], Any], *keys: str) -> Any:
    for k in keys:
        v = item.get(k) if isinstance(item, Mapping) else getattr(item, k, None)
        if v not in (None, ""):
            return v
    return None


def normalize_delivery_request(so: SalesOrder, items: Iterable[Union[Mapping[str, Any], DeliveryLine]]) -> Dict[str, float]:
    """
    Ramène la demande à {id de ligne de commande: quantité}.
    Accepte sales_order_line_id / line_id / id et quantity / qty ;
    les doublons pour une même ligne sont additionnés.
    """
    requested: Dict[str, float] = {}
    for item in items or []:
        line_id = _item_value(item, "sales_order_line_id", "line_id", "id")
        if line_id is None or so.line(str(line_id)) is None:
            raise InvalidDocument(f"Sales order {so.order_number or so.id} has no line {line_id!r}")
        raw_qty = _item_value(item, "quantity", "qty")
        try:
            qty = float(raw_qty)
        except (TypeError, ValueError):
            raise InvalidDocument(f"Invalid quantity {raw_qty!r} for line {line_id}") from None
        if not math.isfinite(qty) or qty <= 0:
            raise InvalidDocument(f"Quantity for line {line_id} must be positive, got {qty:g}")
        requested[str(line_id)] = round(requested.get(str(line_id), 0.0) + qty, _QTY_PRECISION)
    if not requested:
        raise InvalidDocument("A delivery order needs at least one line")
    return requested


def delivered_quantities(so: SalesOrder, delivery_orders: Iterable[DeliveryOrder]) -> Dict[str, float]:
    """Somme des quantités des bons de livraison non annulés, par ligne de commande."""
    delivered = {ln.id: 0.0 for ln in so.lines}
    for do in delivery_orders:
        if do.sales_order_id != so.id or not do.counts_toward_delivery():
            continue
        for ln in do.lines:
            if ln.sales_order_line_id in delivered:
                delivered[ln.sales_order_line_id] = round(
                    delivered[ln.sales_order_line_id] + ln.quantity, _QTY_PRECISION
                )
    return delivered


def check_over_delivery(so: SalesOrder, delivered: Mapping[str, float], requested: Mapping[str, float]) -> None:
    for line_id, qty in requested.items():
        line = so.line(line_id)
        remaining = round(max(0.0, line.ordered_quantity - delivered.get(line_id, 0.0)), _QTY_PRECISION)
        if qty > remaining:
            raise OverDelivery(line_id, qty, remaining, label=line.label or line.product_ref)


def add_quantities(delivered: Mapping[str, float], requested: Mapping[str, float]) -> Dict[str, float]:
    out = dict(delivered)
    for line_id, qty in requested.items():
        out[line_id] = round(out.get(line_id, 0.0) + qty, _QTY_PRECISION)
    return out


def derive_sales_order_status(current: SalesOrderStatus, lines: List[SalesOrderLine]) -> SalesOrderStatus:
    if current == "Cancelled":
        return current
    if lines and all(ln.is_fully_delivered() for ln in lines):
        return "FullyDelivered"
    if any(ln.delivered_quantity > 0 for ln in lines):
        return "PartiallyDelivered"
    return "Open"


def apply_delivered(so: SalesOrder, delivered: Mapping[str, float]) -> Tuple[List[SalesOrderLine], SalesOrderStatus]:
    lines: List[SalesOrderLine] = []
    for ln in so.lines:
        qty = delivered.get(ln.id, 0.0)
        if qty > ln.ordered_quantity:
            # ne doit jamais arriver : check_over_delivery passe avant
            raise OverDelivery(ln.id, qty, ln.ordered_quantity, label=ln.label or ln.product_ref)
        lines.append(ln.model_copy(update={"delivered_quantity": qty}))
    return lines, derive_sales_order_status(so.status, lines)


def delivery_lines_for(so: SalesOrder, requested: Mapping[str, float]) -> List[DeliveryLine]:
    out: List[DeliveryLine] = []
    for line_id, qty in requested.items():
        src = so.line(line_id)
        out.append(
            DeliveryLine(
                sales_order_line_id=line_id,
                product_ref=src.product_ref,
                label=src.label,
                description=src.description,
                unit=src.unit,
                unit_price_cent=src.unit_price_cent,
                tax_rate=src.tax_rate,
                quantity=qty,
            )
        )
    return out


# ---------- Révision de commande ---------- #

def ensure_revisable(so: SalesOrder) -> None:
    if so.status == "Cancelled":
        raise InvalidSourceState("sales order", so.status, "revise sales order")


def revise_lines(
    so: SalesOrder, new_lines: Sequence[SalesOrderLine], delivered: Mapping[str, float]
) -> List[SalesOrderLine]:
    """
    Nouvelles lignes de commande, quantités livrées reprises des bons existants.
    Une ligne déjà livrée ne peut ni disparaître ni passer sous sa quantité livrée.
    """
    owner = f"Sales order {so.order_number or so.id}"
    if not new_lines:
        raise InvalidDocument(f"{owner} needs at least one line")
    ensure_unique_lines(new_lines, owner)

    by_id = {ln.id: ln for ln in new_lines}
    for line_id, qty in delivered.items():
        if qty <= 0:
            continue
        new = by_id.get(line_id)
        if new is None:
            raise InvalidDocument(f"{owner}: line {line_id} has {qty:g} delivered and cannot be removed")
        if new.ordered_quantity < qty:
            raise InvalidDocument(
                f"{owner}: line {line_id} cannot be cut to {new.ordered_quantity:g}, "
                f"{qty:g} already delivered"
            )

    return [
        ln.model_copy(update={
            "delivered_quantity": delivered.get(ln.id, 0.0),
            "total_cent": line_total_cent(ln.ordered_quantity, ln.unit_price_cent),
        })
        for ln in new_lines
    ]
