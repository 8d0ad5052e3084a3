import json
import logging
from importlib import resources

from page_composer.core.errors import NotFoundError
from page_composer.core.tree import validate_tree
from page_composer.models import SCHEMA_VERSION, Configuration, ConfigurationStatus, PageType, SlotNode

logger = logging.getLogger(__name__)

DEFAULT_TENANT = "*"


class BuiltinDefaultProvider:
    """Serves the JSON templates shipped in ``page_composer/defaults/templates``.

    Templates are parsed and validated once per page type; every call hands
    out an independent copy.
    """

    def __init__(self, package: str = "page_composer.defaults", directory: str = "templates") -> None:
        self._root = resources.files(package).joinpath(directory)
        self._templates: dict[PageType, Configuration] = {}

    def get_default(self, page_type: PageType) -> Configuration:
        template = self._templates.get(page_type)
        if template is None:
            template = self._load(page_type)
            self._templates[page_type] = template
        return template.model_copy(deep=True)

    def _load(self, page_type: PageType) -> Configuration:
        resource = self._root.joinpath(f"{page_type.value}.json")
        if not resource.is_file():
            raise NotFoundError(
                f"No default template for page type {page_type.value!r}", {"page_type": page_type.value}
            )
        data = json.loads(resource.read_text(encoding="utf-8"))
        slots = {slot_id: SlotNode.model_validate(node) for slot_id, node in data["slots"].items()}
        validate_tree(slots, data["root_id"])
        logger.debug("Loaded default template for %s (%d slots)", page_type.value, len(slots))
        return Configuration(
            id=f"default:{page_type.value}",
            tenant_id=DEFAULT_TENANT,
            page_type=page_type,
            slots=slots,
            root_id=data["root_id"],
            status=ConfigurationStatus.PUBLISHED,
            version_number=0,
            schema_version=data.get("schema_version", SCHEMA_VERSION),
        )
