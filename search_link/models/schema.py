import logging
import threading
from typing import Any, Dict, Optional, Protocol

import jsonpath_ng

from search_link.models.errors import ElasticsearchError

logger = logging.getLogger(__name__)

NESTED_TYPE = "nested"
__MAPPINGS_JSONPATH = jsonpath_ng.parse("$.*.mappings")


class SchemaLookup(Protocol):
    def is_nested_field(self, path: str) -> bool:
        ...


def _mapping_properties(mappings: Dict[str, Any], type_name: Optional[str]) -> Dict[str, Any]:
    if "properties" in mappings:
        return mappings["properties"]
    # pre-7.x mappings carry a type name level
    if type_name and isinstance(mappings.get(type_name), dict):
        return mappings[type_name].get("properties", {})
    return {}


def is_nested_in_mapping(mapping: Dict[str, Any], path: str, type_name: Optional[str] = None) -> bool:
    """
    Answer whether `path` (dotted) is declared with type `nested` in a GET _mapping response.
    Paths that are not in the mapping at all are not nested.
    """
    for match in __MAPPINGS_JSONPATH.find(mapping):
        if not isinstance(match.value, dict):
            continue
        properties = _mapping_properties(match.value, type_name)
        definition = None
        for segment in path.split("."):
            definition = properties.get(segment) if isinstance(properties, dict) else None
            if not isinstance(definition, dict):
                definition = None
                break
            properties = definition.get("properties", {})
        if definition is not None and definition.get("type") == NESTED_TYPE:
            return True
    return False


class MappingSchema:
    """
    Nested-field lookups backed by the index's live mapping, which is fetched on first use.
    """

    def __init__(self, elasticsearch) -> None:
        self._elasticsearch = elasticsearch
        self._mapping: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()

    def _get_mapping(self) -> Dict[str, Any]:
        with self._lock:
            if self._mapping is None:
                self._mapping = self._elasticsearch.get_mapping()
            return self._mapping

    def is_nested_field(self, path: str) -> bool:
        try:
            mapping = self._get_mapping()
        except ElasticsearchError as e:
            logger.warning(f"Unable to fetch mapping for index {self._elasticsearch.index_name}, "
                           f"treating '{path}' as not nested: {e}")
            return False
        return is_nested_in_mapping(mapping, path, self._elasticsearch.type_name)

    def invalidate(self) -> None:
        with self._lock:
            self._mapping = None
