"""
Catalogue configuration loader.

Loads plan and course definitions from config/catalog.yml for the seed
script.

Usage:
    from fxacademy.config.catalog import get_catalog_loader

    loader = get_catalog_loader()
    for plan in loader.get_plans():
        ...
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

import yaml

from fxacademy.models.plan import PlanInterval

logger = logging.getLogger(__name__)

_FALLBACK_CURRENCY = "USD"


class CatalogConfigError(ValueError):
    """catalog.yml is present but malformed."""
    pass


@dataclass(frozen=True)
class PlanEntry:
    id: str
    name: str
    price_minor: int
    currency: str = _FALLBACK_CURRENCY
    interval: str = PlanInterval.MONTHLY
    duration_days: Optional[int] = None
    description: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class CourseEntry:
    id: str
    title: str
    price_minor: int
    currency: str = _FALLBACK_CURRENCY
    level: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    is_published: bool = True


def _require(entry: Dict[str, Any], key: str, kind: str) -> Any:
    value = entry.get(key)
    if value is None or value == "":
        raise CatalogConfigError(f"{kind} entry missing '{key}': {entry}")
    return value


def _price(entry: Dict[str, Any], kind: str) -> int:
    price = _require(entry, "price_minor", kind)
    if not isinstance(price, int) or isinstance(price, bool) or price < 0:
        raise CatalogConfigError(f"{kind} '{entry.get('id')}' price_minor must be a non-negative integer")
    return price


class CatalogLoader:
    """
    Thread-safe singleton loader for config/catalog.yml.

    Pass config_path (or set CATALOG_CONFIG_PATH) to load another file.
    """

    _instance: Optional["CatalogLoader"] = None
    _lock = Lock()

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._config_path = config_path or os.getenv("CATALOG_CONFIG_PATH")
        self._raw: Dict[str, Any] = {}
        self._load_lock = Lock()

        self._load()
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (tests)."""
        with cls._lock:
            cls._instance = None

    def _resolve_path(self) -> Path:
        if self._config_path:
            return Path(self._config_path)

        candidates = [
            Path(__file__).parent.parent.parent / "config" / "catalog.yml",
            Path(os.getcwd()) / "config" / "catalog.yml",
            Path(os.getcwd()) / "backend" / "config" / "catalog.yml",
        ]

        for p in candidates:
            resolved = p.resolve()
            if resolved.exists():
                return resolved

        raise FileNotFoundError(
            f"catalog.yml not found in: {[str(p) for p in candidates]}"
        )

    def _load(self) -> None:
        with self._load_lock:
            try:
                path = self._resolve_path()
                logger.info("Loading catalog from %s", path)

                with open(path, "r") as f:
                    self._raw = yaml.safe_load(f) or {}

                logger.info(
                    "Loaded catalog: plans=%d, courses=%d",
                    len(self._raw.get("plans") or []),
                    len(self._raw.get("courses") or []),
                )
            except FileNotFoundError:
                logger.warning("catalog.yml not found, catalog is empty")
                self._raw = {}

    def reload(self) -> None:
        """Re-read the YAML from disk."""
        self._load()

    @property
    def default_currency(self) -> str:
        return str(self._raw.get("currency") or _FALLBACK_CURRENCY).upper()

    def get_plans(self) -> List[PlanEntry]:
        """
        Plan definitions.

        Raises:
            CatalogConfigError: an entry is missing id, name or price
        """
        plans = []
        for entry in self._raw.get("plans") or []:
            duration = entry.get("duration_days")
            plans.append(PlanEntry(
                id=str(_require(entry, "id", "plan")),
                name=str(_require(entry, "name", "plan")),
                price_minor=_price(entry, "plan"),
                currency=str(entry.get("currency") or self.default_currency).upper(),
                interval=entry.get("interval") or PlanInterval.MONTHLY,
                duration_days=int(duration) if duration is not None else None,
                description=entry.get("description"),
                is_active=bool(entry.get("is_active", True)),
            ))
        return plans

    def get_courses(self) -> List[CourseEntry]:
        """
        Course definitions.

        Raises:
            CatalogConfigError: an entry is missing id, title or price
        """
        courses = []
        for entry in self._raw.get("courses") or []:
            level = entry.get("level")
            courses.append(CourseEntry(
                id=str(_require(entry, "id", "course")),
                title=str(_require(entry, "title", "course")),
                price_minor=_price(entry, "course"),
                currency=str(entry.get("currency") or self.default_currency).upper(),
                level=level.strip().lower() if level else None,
                slug=entry.get("slug"),
                description=entry.get("description"),
                is_published=bool(entry.get("is_published", True)),
            ))
        return courses


def get_catalog_loader(config_path: Optional[str] = None) -> CatalogLoader:
    """Get the catalog loader singleton."""
    return CatalogLoader(config_path)
