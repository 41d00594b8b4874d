"""Caché en memoria de valores de atributo de producto (TTL corto).

Un lote se sirve desde caché solo si todos los ids están presentes y vigentes;
cualquier fallo provoca una única consulta al ERP con el lote completo.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List
from models import AttributeValueRecord, m2o_name, unique_ids


@dataclass(frozen=True)
class AttributeInfo:
    name: str
    attribute_name: str


@dataclass
class AttributeCacheEntry:
    id: int
    name: str
    attribute_name: str
    expires: float


class AttributeCache:
    """Memoización por id con caducidad perezosa y sin desalojo."""
    def __init__(self, ttl_seconds: float = 5 * 60, clock: Callable[[], float] = time.time):
        self.ttl = ttl_seconds
        self.clock = clock
        self.entries: Dict[int, AttributeCacheEntry] = {}

    # _cached: Devuelve el lote completo o None si falta o caducó algún id.
    def _cached(self, ids: List[int]):
        now = self.clock()
        result = {}
        for attr_id in ids:
            entry = self.entries.get(attr_id)
            if entry is None or entry.expires < now:
                return None
            result[attr_id] = AttributeInfo(entry.name, entry.attribute_name)
        return result

    def _store(self, records: Iterable[AttributeValueRecord]) -> Dict[int, AttributeInfo]:
        expires = self.clock() + self.ttl
        result = {}
        for rec in records:
            info = AttributeInfo(rec.name, m2o_name(rec.attribute_id, ''))
            self.entries[rec.id] = AttributeCacheEntry(rec.id, info.name, info.attribute_name, expires)
            result[rec.id] = info
        return result

    def lookup(self, ids: Iterable[int],
               fetch: Callable[[List[int]], List[AttributeValueRecord]]) -> Dict[int, AttributeInfo]:
        """Resuelve ids a {nombre, atributo}; `fetch` consulta el ERP por lote.

        Los ids que el ERP no devuelve quedan ausentes del resultado y no se
        cachean como negativos.
        """
        wanted = unique_ids(ids)
        if not wanted:
            return {}
        cached = self._cached(wanted)
        if cached is not None:
            return cached
        return self._store(fetch(wanted))
