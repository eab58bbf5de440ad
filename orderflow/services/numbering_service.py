from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from orderflow.config import NumberingDefaults, default_numbering
from orderflow.errors import InvalidDocument, NotFound, SchemeNotFound
from orderflow.models.numbering import NumberingScheme
from orderflow.storage.repo import Repository

logger = logging.getLogger(__name__)


class NumberingService:
    """
    Allocation des numéros de documents (QT-1, SO-42, ...).
    Le compteur vit dans le stockage, jamais dans le process : chaque
    allocation est un lire-incrémenter-écrire atomique sur la ligne du type.
    """

    def __init__(
        self,
        repo: Repository[NumberingScheme],
        defaults: Optional[Mapping[str, NumberingDefaults]] = None,
    ) -> None:
        self.repo = repo
        self.defaults: Dict[str, NumberingDefaults] = dict(defaults or default_numbering())

    # ----- Provisioning ----- #

    def provision_defaults(self) -> List[NumberingScheme]:
        """Crée les schémas manquants ; ne touche jamais à un compteur existant."""
        created: List[NumberingScheme] = []
        for doc_type, d in self.defaults.items():
            if self.repo.get(doc_type) is not None:
                continue
            scheme = NumberingScheme(
                document_type=doc_type, prefix=d.prefix, current_number=d.start,
                suffix=d.suffix, pad_width=d.pad_width,
            )
            created.append(self.repo.create(scheme))
            logger.info("Provisioned numbering scheme %s (%s)", doc_type, scheme.preview())
        return created

    def get_scheme(self, document_type: str) -> NumberingScheme:
        scheme = self.repo.get(document_type)
        if scheme is None:
            raise SchemeNotFound(document_type)
        return scheme

    def list_schemes(self) -> List[NumberingScheme]:
        return self.repo.list()

    def update_scheme(
        self,
        document_type: str,
        *,
        prefix: Optional[str] = None,
        suffix: Optional[str] = None,
        pad_width: Optional[int] = None,
        next_number: Optional[int] = None,
    ) -> NumberingScheme:
        def _patch(current: NumberingScheme) -> Dict[str, object]:
            patch: Dict[str, object] = {}
            if prefix is not None:
                patch["prefix"] = prefix
            if suffix is not None:
                patch["suffix"] = suffix
            if pad_width is not None:
                patch["pad_width"] = pad_width
            if next_number is not None:
                if next_number < current.current_number:
                    raise InvalidDocument(
                        f"{document_type} counter can only move forward "
                        f"({current.current_number} -> {next_number})"
                    )
                patch["current_number"] = next_number
            return patch

        try:
            _, after = self.repo.atomic_update(document_type, _patch)
        except NotFound:
            raise SchemeNotFound(document_type) from None
        return after

    # ----- Allocation ----- #

    def allocate(self, document_type: str, customer_name: Optional[str] = None) -> str:
        try:
            before, _ = self.repo.atomic_update(
                document_type, lambda s: {"current_number": s.current_number + 1}
            )
        except NotFound:
            raise SchemeNotFound(document_type) from None
        number = before.format(before.current_number, customer_name)
        logger.info("Allocated %s number %s", document_type, number)
        return number
