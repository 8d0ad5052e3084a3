import logging
from collections.abc import Sequence

from page_composer.core.cache import ResolutionCache
from page_composer.core.drafts import within
from page_composer.core.lifecycle import DRAFT, PUBLISHED
from page_composer.core.ports.defaults import DefaultConfigurationProvider
from page_composer.core.ports.store import ConfigurationStore
from page_composer.core.resolve import fingerprint, resolve
from page_composer.models import (
    Configuration,
    OverrideLayer,
    PageType,
    ResolutionContext,
    ResolvedSlotTree,
)

logger = logging.getLogger(__name__)


class ResolutionService:
    """Loads the configuration a caller should see and resolves it, through the cache when one is set."""

    def __init__(self, defaults: DefaultConfigurationProvider, cache: ResolutionCache | None = None) -> None:
        self.defaults = defaults
        self.cache = cache

    async def load(
        self, store: ConfigurationStore, tenant_id: str, page_type: PageType, preview: bool = False
    ) -> Configuration:
        order = (DRAFT, PUBLISHED) if preview else (PUBLISHED, DRAFT)
        for status in order:
            configuration = await store.find(tenant_id, page_type, status)
            if configuration is not None:
                return configuration
        logger.info("No stored configuration for %s/%s, using the default template", tenant_id, page_type.value)
        default = self.defaults.get_default(page_type)
        return default.model_copy(update={"tenant_id": tenant_id})

    async def resolve_page(
        self,
        store: ConfigurationStore,
        tenant_id: str,
        page_type: PageType,
        layers: Sequence[OverrideLayer] = (),
        context: ResolutionContext | None = None,
        preview: bool = False,
        deadline: float | None = None,
    ) -> ResolvedSlotTree:
        context = context or ResolutionContext()
        configuration = await within(self.load(store, tenant_id, page_type, preview), deadline)
        if self.cache is None:
            return resolve(configuration, layers, context)

        key = (tenant_id, page_type, configuration.status, fingerprint(layers, context))
        cached = self.cache.get(key, configuration.id, configuration.revision)
        if cached is not None:
            return cached
        tree = resolve(configuration, layers, context)
        self.cache.put(key, configuration.id, configuration.revision, tree)
        return tree
