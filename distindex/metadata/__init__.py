"""Release metadata loading."""

from .loader import (
    DEFAULT_BACKENDS,
    FlatBackend,
    JsonBackend,
    LenientYamlBackend,
    MetaBackend,
    MetadataLoader,
    YamlBackend,
)
from .meta import ALWAYS_NO_INDEX_DIRS, DistMeta

__all__ = [
    "ALWAYS_NO_INDEX_DIRS",
    "DEFAULT_BACKENDS",
    "DistMeta",
    "FlatBackend",
    "JsonBackend",
    "LenientYamlBackend",
    "MetaBackend",
    "MetadataLoader",
    "YamlBackend",
]
