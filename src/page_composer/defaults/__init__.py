from page_composer.defaults.provider import DEFAULT_TENANT, BuiltinDefaultProvider

__all__ = ["DEFAULT_TENANT", "BuiltinDefaultProvider"]
