"""
Configuration de l'application.

- Source principale : <data_dir>/settings.json (sections numbering, company, pdf, storage)
- Surcharges : variables d'environnement ORDERFLOW_DATA_DIR, WKHTMLTOPDF_PATH
- Validation : modèles Pydantic ; fichier absent => valeurs par défaut
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from orderflow.errors import ConfigError
from orderflow.models.numbering import DOCUMENT_TYPES

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parents[1]
DEFAULT_DATA_DIR = ROOT_DIR / "data"
SETTINGS_FILENAME = "settings.json"


class NumberingDefaults(BaseModel):
    prefix: str
    start: int = Field(default=1, ge=1)
    suffix: str = ""
    pad_width: int = Field(default=0, ge=0)


def default_numbering() -> Dict[str, NumberingDefaults]:
    return {
        "quote": NumberingDefaults(prefix="QT-"),
        "sales_order": NumberingDefaults(prefix="SO-"),
        "delivery_order": NumberingDefaults(prefix="DO-"),
        "purchase_order": NumberingDefaults(prefix="PO-"),
    }


class CompanyConfig(BaseModel):
    name: str = "Ma Société"
    email: str = ""
    address: str = ""
    tax_id: str = ""


class PdfConfig(BaseModel):
    wkhtmltopdf_path: Optional[str] = None
    exports_dir: Optional[str] = None


class StorageConfig(BaseModel):
    backup_enabled: bool = True
    backup_keep: int = Field(default=5, ge=0)


class AppSettings(BaseModel):
    data_dir: Path = DEFAULT_DATA_DIR
    numbering: Dict[str, NumberingDefaults] = Field(default_factory=default_numbering)
    company: CompanyConfig = Field(default_factory=CompanyConfig)
    pdf: PdfConfig = Field(default_factory=PdfConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("numbering")
    @classmethod
    def known_document_types(cls, v: Dict[str, NumberingDefaults]) -> Dict[str, NumberingDefaults]:
        unknown = set(v) - set(DOCUMENT_TYPES)
        if unknown:
            raise ValueError(f"numbering has unknown document types: {sorted(unknown)}")
        # on complète les types absents avec les défauts
        return {**default_numbering(), **v}

    @property
    def exports_dir(self) -> Path:
        return Path(self.pdf.exports_dir) if self.pdf.exports_dir else self.data_dir.parent / "exports"


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(key, default)
    return value.strip() if isinstance(value, str) and value.strip() else default


def _read_json_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return data


def load_settings(data_dir: Optional[Union[str, Path]] = None) -> AppSettings:
    base = Path(data_dir or _env("ORDERFLOW_DATA_DIR") or DEFAULT_DATA_DIR)
    raw = _read_json_file(base / SETTINGS_FILENAME)
    raw["data_dir"] = base

    wk = _env("WKHTMLTOPDF_PATH")
    if wk:
        pdf = raw.get("pdf") if isinstance(raw.get("pdf"), dict) else {}
        raw["pdf"] = {**pdf, "wkhtmltopdf_path": wk}

    try:
        settings = AppSettings.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {base / SETTINGS_FILENAME}: {e}") from e
    logger.info("Settings loaded from %s", base)
    return settings
