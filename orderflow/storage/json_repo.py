from __future__ import annotations

import glob
import json
import logging
import shutil
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Type, Union

from orderflow.errors import RepositoryError
from orderflow.storage.repo import M, Repository

logger = logging.getLogger(__name__)


def _json_default(o: Any) -> Any:
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    return str(o)


class JsonRepository(Repository[M]):
    """
    Repo JSON typé, un fichier par collection.
    - Rotation de backups (backup_enabled, backup_keep)
    - N'écrit pas si le contenu ne change pas (réduction du bruit et des .bak)
    - Toute erreur d'I/O remonte en RepositoryError
    """

    def __init__(
        self,
        filepath: Union[str, Path],
        model: Type[M],
        entity_name: str = "entity",
        key: str = "id",
        *,
        backup_enabled: bool = True,
        backup_keep: int = 5,
    ) -> None:
        super().__init__(model, entity_name, key)
        self.filepath = Path(filepath)
        self.backup_enabled = backup_enabled
        self.backup_keep = max(0, int(backup_keep))

        try:
            self.filepath.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RepositoryError(f"Cannot create data directory {self.filepath.parent}: {e}") from e
        if not self.filepath.exists():
            self._write_raw([])

    # ---------------- I/O bas niveau ---------------- #

    def _read_raw(self) -> List[Dict[str, Any]]:
        try:
            with self.filepath.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as e:
            # Fichier corrompu → copie de côté, on ne repart PAS sur une liste vide
            backup = self.filepath.with_suffix(".corrupt.json")
            try:
                shutil.copy2(self.filepath, backup)
            except OSError:
                logger.warning("Could not copy corrupt file %s aside", self.filepath)
            raise RepositoryError(f"{self.filepath} is not valid JSON: {e}") from e
        except OSError as e:
            raise RepositoryError(f"Cannot read {self.filepath}: {e}") from e
        if not isinstance(data, list):
            raise RepositoryError(f"{self.filepath} must contain a JSON list")
        return data

    def _rotate_backups(self) -> None:
        if not self.backup_enabled or self.backup_keep <= 0:
            return
        pattern = str(self.filepath.with_suffix(".*.bak.json"))
        files = sorted(glob.glob(pattern))
        # garde les plus récents
        if len(files) > self.backup_keep:
            for old in files[: len(files) - self.backup_keep]:
                try:
                    Path(old).unlink(missing_ok=True)
                except OSError:
                    logger.warning("Could not remove old backup %s", old)

    def _write_raw(self, rows: List[Dict[str, Any]]) -> None:
        with self._lock:
            new_dump = json.dumps(list(rows), ensure_ascii=False, indent=2, default=_json_default)

            # si contenu identique → ne rien faire
            if self.filepath.exists():
                try:
                    if self.filepath.read_text(encoding="utf-8") == new_dump:
                        return
                except OSError:
                    pass

            # backup
            if self.backup_enabled and self.filepath.exists():
                ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
                backup = self.filepath.with_suffix(f".{ts}.bak.json")
                try:
                    shutil.copy2(self.filepath, backup)
                except OSError:
                    logger.warning("Backup of %s failed", self.filepath)
                self._rotate_backups()

            # write
            try:
                with self.filepath.open("w", encoding="utf-8") as f:
                    f.write(new_dump)
            except OSError as e:
                raise RepositoryError(f"Cannot write {self.filepath}: {e}") from e
