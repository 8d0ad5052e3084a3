from typing import Protocol

from page_composer.models import Configuration, PageType


class DefaultConfigurationProvider(Protocol):
    def get_default(self, page_type: PageType) -> Configuration: ...
