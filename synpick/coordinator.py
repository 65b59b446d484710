"""Cache-first access to the model catalog."""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

from .cache import CacheInfo, ModelCache
from .catalog import CatalogFetcher
from .models import ModelRecord

logger = logging.getLogger(__name__)


def sort_models(records: Sequence[ModelRecord]) -> List[ModelRecord]:
    """Sort records by id, ascending."""
    return sorted(records, key=lambda record: record.id)


class ModelCoordinator:
    """Decides between the cache and the network and answers lookups.

    This is the only component the rest of synpick asks for model data.
    """

    def __init__(self, cache: ModelCache, fetcher: CatalogFetcher, api_key: str, models_api_url: str):
        self.cache = cache
        self.fetcher = fetcher
        self.api_key = api_key
        self.models_api_url = models_api_url

    async def fetch_models(self, force_refresh: bool = False) -> List[ModelRecord]:
        """Return models from a valid cache, otherwise from the catalog.

        A fresh fetch is persisted best-effort: a failed save is logged and the
        fetched records are still returned. CatalogUnavailable propagates.
        """
        if not force_refresh and self.cache.is_valid():
            records = self.cache.load()
            logger.debug("Using %d cached models", len(records))
            return records

        if not self.api_key:
            logger.warning("No API key configured; cannot fetch models")
            return []

        records = await self.fetcher.fetch(self.api_key, self.models_api_url)

        if not self.cache.save(records):
            logger.warning("Could not persist %d models to the cache", len(records))
        return records

    async def _resolve(self, records: Optional[Sequence[ModelRecord]]) -> Sequence[ModelRecord]:
        if records is None:
            return await self.fetch_models()
        return records

    async def search(self, query: str, records: Optional[Sequence[ModelRecord]] = None) -> List[ModelRecord]:
        """Case-insensitive substring search over id, provider and name."""
        records = await self._resolve(records)
        needle = (query or "").strip().lower()
        if not needle:
            return sort_models(records)

        matches = [
            record for record in records
            if needle in record.id.lower()
            or needle in (record.provider or "").lower()
            or needle in record.name.lower()
        ]
        return sort_models(matches)

    async def get_by_id(self, model_id: str, records: Optional[Sequence[ModelRecord]] = None) -> Optional[ModelRecord]:
        records = await self._resolve(records)
        for record in records:
            if record.id == model_id:
                return record
        return None

    def categorize(self, records: Sequence[ModelRecord]) -> Dict[str, List[ModelRecord]]:
        """Group records by provider, both levels sorted."""
        groups: Dict[str, List[ModelRecord]] = {}
        for record in sort_models(records):
            groups.setdefault(record.provider or "other", []).append(record)
        return OrderedDict(sorted(groups.items()))

    def cache_info(self) -> CacheInfo:
        return self.cache.info()

    def clear_cache(self) -> bool:
        return self.cache.clear()
