from datetime import timedelta
from typing import Dict, Iterable, Optional, Protocol, Set

from loguru import logger
from pydantic import BaseModel

from cfb_reconcile.models.enums import Category
from cfb_reconcile.resolution.consolidation import ConsolidationMap
from cfb_reconcile.storage.cache_manager import CacheEntry

CONSOLIDATION_KEY = "ncaa_id_consolidation_map"


class StoreError(Exception):
    """Raised when the store is used outside its load/commit boundary."""

    pass


class Cache(Protocol):
    def get(self, key: str, ttl: Optional[timedelta] = None) -> Optional[CacheEntry]: ...

    def read(self, key: str) -> Optional[CacheEntry]: ...

    def set(self, key: str, data) -> None: ...


def binding_key(category: Category) -> str:
    return f"{category.value}_espn_ncaa_binding"


def snapshot_key(category: Category, name: str) -> str:
    return f"{category.value}_{name}"


class ReconciliationStore:
    """Binding tables and the consolidation map, read once and written once per run.

    Resolution code receives the store by argument and mutates it in memory;
    nothing reaches disk until `commit()`. The tables are read without an age
    limit; `ttl` only applies to snapshots.
    """

    def __init__(self, cache: Cache, ttl: timedelta = timedelta(days=365)):
        self.cache = cache
        self.ttl = ttl
        self._loaded = False
        self._consolidation = ConsolidationMap()
        self._bindings: Dict[Category, Dict[str, str]] = {}
        self._dirty: Set[Category] = set()
        self._consolidation_dirty = False

    def load(self, categories: Iterable[Category] = tuple(Category)) -> "ReconciliationStore":
        entry = self.cache.read(CONSOLIDATION_KEY)
        raw_map = entry.data if entry and isinstance(entry.data, dict) else {}
        self._consolidation = ConsolidationMap(raw_map)
        for category in categories:
            entry = self.cache.read(binding_key(category))
            table = entry.data if entry and isinstance(entry.data, dict) else {}
            self._bindings[category] = {str(k): str(v) for k, v in table.items() if k and v}
        self._loaded = True
        self._dirty.clear()
        self._consolidation_dirty = False
        logger.info(
            f"Loaded store: {len(self._consolidation)} consolidations, "
            + ", ".join(f"{c.value}={len(t)}" for c, t in self._bindings.items())
        )
        return self

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise StoreError("ReconciliationStore used before load()")

    @property
    def consolidation(self) -> ConsolidationMap:
        self._require_loaded()
        return self._consolidation

    def resolve(self, category: Category, ncaa_id: Optional[str]) -> Optional[str]:
        return self.consolidation.resolve(category, ncaa_id)

    def add_consolidation(self, category: Category, duplicate_id: str, canonical_id: str) -> str:
        resolved = self.consolidation.add_mapping(category, duplicate_id, canonical_id)
        if resolved != duplicate_id:
            self._consolidation_dirty = True
            self._rekey_bindings(category)
        return resolved

    def _rekey_bindings(self, category: Category) -> None:
        table = self._bindings.get(category, {})
        rekeyed: Dict[str, str] = {}
        for ncaa_id, espn_id in table.items():
            canonical = self._consolidation.resolve(category, ncaa_id)
            if canonical in rekeyed and rekeyed[canonical] != espn_id:
                # A binding on the canonical id itself beats one inherited from a duplicate
                if canonical != ncaa_id:
                    logger.warning(
                        f"Dropping {category.value} binding {ncaa_id}->{espn_id}; "
                        f"{canonical} is already bound to {rekeyed[canonical]}"
                    )
                    continue
            rekeyed[canonical] = espn_id
        if rekeyed != table:
            self._bindings[category] = rekeyed
            self._dirty.add(category)

    def bindings_for(self, category: Category) -> Dict[str, str]:
        """Binding table with every key in canonical form."""
        self._require_loaded()
        table = self._bindings.setdefault(category, {})
        result: Dict[str, str] = {}
        for ncaa_id, espn_id in table.items():
            canonical = self._consolidation.resolve(category, ncaa_id)
            if canonical not in result or canonical == ncaa_id:
                result[canonical] = espn_id
        return result

    def espn_for(self, category: Category, ncaa_id: Optional[str]) -> Optional[str]:
        if not ncaa_id:
            return None
        return self.bindings_for(category).get(self.resolve(category, ncaa_id))

    def ncaa_for(self, category: Category, espn_id: Optional[str]) -> Optional[str]:
        if not espn_id:
            return None
        for ncaa_id, bound in self.bindings_for(category).items():
            if bound == espn_id:
                return ncaa_id
        return None

    def bind(self, category: Category, ncaa_id: str, espn_id: str) -> bool:
        """Records ncaa_id -> espn_id. Returns True when the table changed."""
        self._require_loaded()
        canonical = self.resolve(category, ncaa_id)
        table = self._bindings.setdefault(category, {})
        if table.get(canonical) == espn_id:
            return False
        if canonical in table:
            logger.warning(
                f"Rebinding {category.value} NCAA {canonical}: {table[canonical]} -> {espn_id}"
            )
        table[canonical] = espn_id
        self._dirty.add(category)
        return True

    def commit(self) -> None:
        self._require_loaded()
        if self._consolidation_dirty:
            self.cache.set(CONSOLIDATION_KEY, self._consolidation.to_dict())
        for category in sorted(self._dirty, key=lambda c: c.value):
            self.cache.set(binding_key(category), dict(sorted(self._bindings[category].items())))
        logger.success(
            f"Committed store ({'consolidation, ' if self._consolidation_dirty else ''}"
            f"{len(self._dirty)} binding table(s))"
        )
        self._dirty.clear()
        self._consolidation_dirty = False

    def save_snapshot(self, category: Category, name: str, models: Iterable[BaseModel]) -> None:
        self.cache.set(snapshot_key(category, name), [m.model_dump(mode="json") for m in models])

    def load_snapshot(self, category: Category, name: str) -> Optional[list]:
        entry = self.cache.get(snapshot_key(category, name), self.ttl)
        return entry.data if entry else None
