from __future__ import annotations

from fastapi import APIRouter, Depends

from page_composer.api.dependencies import get_default_provider
from page_composer.core.ports.defaults import DefaultConfigurationProvider
from page_composer.models import Configuration, PageType

router = APIRouter(prefix="/defaults", tags=["defaults"])


@router.get("/{page_type}", response_model=Configuration)
async def get_default(
    page_type: PageType,
    defaults: DefaultConfigurationProvider = Depends(get_default_provider),
) -> Configuration:
    """Built-in template served when a tenant has nothing stored for ``page_type``."""
    return defaults.get_default(page_type)
