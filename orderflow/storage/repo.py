from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from orderflow.errors import InvalidDocument, NotFound, RepositoryError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class Repository(Generic[M]):
    """
    Contrat de persistance typé, une instance par type de document.
    - get / list / create / update / upsert / delete
    - atomic_update : lecture-modification-écriture sous verrou (compteurs)
    - position / restore : annulation d'une suppression au même rang
    Les sous-classes ne fournissent que _read_raw / _write_raw.
    """

    def __init__(self, model: Type[M], entity_name: str = "entity", key: str = "id") -> None:
        self.model = model
        self.entity_name = entity_name
        self.key = key
        self._lock = threading.RLock()

    # ---------------- I/O bas niveau ---------------- #

    def _read_raw(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def _write_raw(self, rows: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    # ---------------- Helpers ---------------- #

    def _hydrate(self, row: Mapping[str, Any]) -> M:
        try:
            return self.model.model_validate(row)
        except ValidationError as e:
            raise RepositoryError(f"Corrupt {self.entity_name} record {row.get(self.key)!r}: {e}") from e

    def _dump(self, item: M) -> Dict[str, Any]:
        return item.model_dump(mode="json")

    def _index_of(self, rows: List[Dict[str, Any]], obj_id: Any) -> int:
        for i, r in enumerate(rows):
            if str(r.get(self.key)) == str(obj_id):
                return i
        return -1

    def _merge(self, existing: Mapping[str, Any], patch: Mapping[str, Any]) -> M:
        try:
            merged = self.model.model_validate({**existing, **patch})
        except ValidationError as e:
            raise InvalidDocument(f"Invalid {self.entity_name} update: {e}") from e
        if hasattr(merged, "touch"):
            merged.touch()
        return merged

    # ---------------- CRUD ---------------- #

    def get(self, obj_id: Any) -> Optional[M]:
        with self._lock:
            rows = self._read_raw()
        idx = self._index_of(rows, obj_id)
        return self._hydrate(rows[idx]) if idx >= 0 else None

    def list(self, predicate: Optional[Callable[[M], bool]] = None) -> List[M]:
        with self._lock:
            rows = self._read_raw()
        out: List[M] = []
        for r in rows:
            try:
                item = self.model.model_validate(r)
            except ValidationError:
                # On ignore les entrées invalides pour ne pas casser les listes
                logger.warning("Skipping invalid %s record %r", self.entity_name, r.get(self.key))
                continue
            if predicate is None or predicate(item):
                out.append(item)
        return out

    def create(self, item: M) -> M:
        record = self._dump(item)
        with self._lock:
            rows = self._read_raw()
            if self._index_of(rows, record.get(self.key)) >= 0:
                raise RepositoryError(f"{self.entity_name} with {self.key}={record.get(self.key)} already exists")
            rows.append(record)
            self._write_raw(rows)
        return self._hydrate(record)

    def update(self, obj_id: Any, patch: Mapping[str, Any]) -> M:
        with self._lock:
            rows = self._read_raw()
            idx = self._index_of(rows, obj_id)
            if idx < 0:
                raise NotFound(self.entity_name, str(obj_id))
            merged = self._merge(rows[idx], patch)
            rows[idx] = self._dump(merged)
            self._write_raw(rows)
        return merged

    def upsert(self, item: M) -> M:
        """Remplace l'item s'il existe (même clé), sinon l'ajoute."""
        record = self._dump(item)
        with self._lock:
            rows = self._read_raw()
            idx = self._index_of(rows, record.get(self.key))
            if idx < 0:
                rows.append(record)
            else:
                rows[idx] = record
            self._write_raw(rows)
        return item

    def delete(self, obj_id: Any) -> bool:
        with self._lock:
            rows = self._read_raw()
            new_rows = [r for r in rows if str(r.get(self.key)) != str(obj_id)]
            changed = len(new_rows) != len(rows)
            if changed:
                self._write_raw(new_rows)
        return changed

    def position(self, obj_id: Any) -> int:
        """Rang de l'item dans la collection, -1 s'il est absent."""
        with self._lock:
            return self._index_of(self._read_raw(), obj_id)

    def restore(self, item: M, position: int) -> M:
        """Remet l'item à son rang d'origine (annulation d'une suppression)."""
        record = self._dump(item)
        with self._lock:
            rows = self._read_raw()
            idx = self._index_of(rows, record.get(self.key))
            if idx >= 0:
                rows[idx] = record
            else:
                rows.insert(max(0, min(position, len(rows))), record)
            self._write_raw(rows)
        return item

    def atomic_update(self, obj_id: Any, fn: Callable[[M], Mapping[str, Any]]) -> Tuple[M, M]:
        """
        Applique fn(courant) -> patch en une seule section critique.
        Retourne (avant, après). Deux appelants concurrents ne voient jamais
        le même état "avant".
        """
        with self._lock:
            rows = self._read_raw()
            idx = self._index_of(rows, obj_id)
            if idx < 0:
                raise NotFound(self.entity_name, str(obj_id))
            before = self._hydrate(rows[idx])
            after = self._merge(rows[idx], fn(before))
            rows[idx] = self._dump(after)
            self._write_raw(rows)
        return before, after


class MemoryRepository(Repository[M]):
    """Backend en mémoire (tests, démo). Copie profonde à chaque accès."""

    def __init__(self, model: Type[M], entity_name: str = "entity", key: str = "id") -> None:
        super().__init__(model, entity_name, key)
        self._rows: List[Dict[str, Any]] = []

    def _read_raw(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._rows)

    def _write_raw(self, rows: List[Dict[str, Any]]) -> None:
        self._rows = copy.deepcopy(rows)
