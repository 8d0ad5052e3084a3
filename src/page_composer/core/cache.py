import logging
import threading
from collections import OrderedDict

from page_composer.models import ConfigurationStatus, PageType, ResolvedSlotTree

logger = logging.getLogger(__name__)

CacheKey = tuple[str, PageType, ConfigurationStatus, str]


class ResolutionCache:
    """LRU cache of resolved trees keyed by (tenant, page type, status, layer fingerprint).

    An entry is only served while the configuration it was built from is
    still the one being resolved at the same revision, so a stale entry can
    cost a miss but never a wrong tree. ``invalidate`` is registered as a
    publish listener to drop a key's entries eagerly.
    """

    def __init__(self, max_entries: int = 512) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: OrderedDict[CacheKey, tuple[str, int, ResolvedSlotTree]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey, configuration_id: str, revision: int) -> ResolvedSlotTree | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("Resolution cache miss for %s", key[:3])
                return None
            cached_id, cached_revision, tree = entry
            if (cached_id, cached_revision) != (configuration_id, revision):
                del self._entries[key]
                logger.debug("Resolution cache entry for %s is stale", key[:3])
                return None
            self._entries.move_to_end(key)
            logger.debug("Resolution cache hit for %s", key[:3])
            return tree.model_copy(deep=True)

    def put(self, key: CacheKey, configuration_id: str, revision: int, tree: ResolvedSlotTree) -> None:
        with self._lock:
            self._entries[key] = (configuration_id, revision, tree.model_copy(deep=True))
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, tenant_id: str, page_type: PageType) -> None:
        with self._lock:
            stale = [key for key in self._entries if key[0] == tenant_id and key[1] == page_type]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Invalidated %d cached tree(s) for %s/%s", len(stale), tenant_id, page_type.value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
