"""
Erreurs métier du cycle de vie des documents.

Toutes dérivent de OrderflowError : la couche store les capture et les
transforme en message lisible, sans jamais patcher son cache.
"""
from __future__ import annotations

from typing import Optional


class OrderflowError(Exception):
    """Base de toutes les erreurs remontées par le moteur."""


class ConfigError(OrderflowError):
    """settings.json illisible ou invalide."""


class RepositoryError(OrderflowError):
    """Echec de transport / stockage. Jamais rejoué automatiquement."""


class NotFound(OrderflowError):
    def __init__(self, entity_name: str, obj_id: str) -> None:
        super().__init__(f"{entity_name} {obj_id} not found")
        self.entity_name = entity_name
        self.obj_id = obj_id


class SchemeNotFound(OrderflowError):
    """Aucun schéma de numérotation provisionné pour ce type (erreur d'exploitation)."""

    def __init__(self, document_type: str) -> None:
        super().__init__(f"No numbering scheme provisioned for '{document_type}'")
        self.document_type = document_type


class IllegalTransition(OrderflowError):
    def __init__(self, entity_name: str, current: str, target: str) -> None:
        super().__init__(f"{entity_name} cannot move from {current} to {target}")
        self.entity_name = entity_name
        self.current = current
        self.target = target


class InvalidSourceState(OrderflowError):
    def __init__(self, entity_name: str, status: str, action: str) -> None:
        super().__init__(f"Cannot {action}: {entity_name} is {status}")
        self.entity_name = entity_name
        self.status = status
        self.action = action


class OverDelivery(OrderflowError):
    def __init__(self, line_id: str, requested: float, remaining: float, label: Optional[str] = None) -> None:
        name = f"'{label}' ({line_id})" if label else line_id
        super().__init__(
            f"Line {name}: requested {requested:g} but only {remaining:g} remaining"
        )
        self.line_id = line_id
        self.requested = requested
        self.remaining = remaining


class InvalidDocument(OrderflowError, ValueError):
    """Payload mal formé (ligne inconnue, quantité <= 0, ...)."""


class DocumentInUse(OrderflowError):
    """Suppression refusée : des documents en aval y font encore référence."""
