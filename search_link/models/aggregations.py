from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional

from search_link.models.errors import ElasticsearchError
from search_link.models.executor import HttpMethod, execute_json_request, json_parser
from search_link.models.prepared_query import PreparedQuery
from search_link.models.schema import SchemaLookup

logger = logging.getLogger(__name__)

SINGLE_AGG_NAME = "the_agg"
AGGREGATIONS_KEY = "aggregations"


@dataclass
class NestedScope:
    path: str
    filter_query: Optional[Dict[str, Any]] = None


def nested_path_for(field: str) -> Optional[str]:
    """The containing path of a field is its name minus the last dotted part, e.g. `a.b.c` -> `a.b`."""
    if "." not in field:
        return None
    return field.rsplit(".", 1)[0]


def make_nested_agg(agg_name: str, agg: Any, path: str, filter_query: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if filter_query is not None:
        return {
            "nested": {"path": path},
            "aggs": {
                agg_name: {
                    "filter": filter_query,
                    "aggs": {agg_name: agg}
                }
            }
        }
    return {
        "nested": {"path": path},
        "aggs": {agg_name: agg}
    }


def _is_nested(schema: SchemaLookup, path: str) -> bool:
    try:
        return schema.is_nested_field(path)
    except (ElasticsearchError, KeyError, ValueError) as e:
        logger.info(f"Nested lookup for '{path}' failed, treating it as not nested: {e}")
        return False


def resolve_nested_scope(field: Optional[str], need_filter: bool, query: PreparedQuery,
                         schema: SchemaLookup) -> Optional[NestedScope]:
    """
    Decide whether aggregations on `field` need a nested wrapper. When they do and `need_filter` is
    set, the matching nested clause is taken out of `query` (at most once) to become the filter.
    """
    if field is None:
        return None
    path = nested_path_for(field)
    if path is None or not _is_nested(schema, path):
        return None

    filter_query = query.take_nested_filter(path) if need_filter else None
    logger.debug(f"Field '{field}' is nested under '{path}', filter: {filter_query}")
    return NestedScope(path, filter_query)


def apply_nested_scope(scope: Optional[NestedScope], aggs: Dict[str, Any]) -> Dict[str, Any]:
    if scope is None:
        return aggs
    return {name: make_nested_agg(name, agg, scope.path, scope.filter_query) for name, agg in aggs.items()}


def rewrite_aggregations(field: Optional[str], need_filter: bool, query: PreparedQuery,
                         aggs: Dict[str, Any], schema: SchemaLookup) -> Dict[str, Any]:
    """
    Wrap every aggregation in `aggs` in a `nested` aggregation when `field` lives inside a nested
    mapping. Aggregations on fields that are not nested are returned unchanged.
    """
    return apply_nested_scope(resolve_nested_scope(field, need_filter, query, schema), aggs)


def unwrap_nested_result(name: str, result: Dict[str, Any], scope: NestedScope) -> Dict[str, Any]:
    inner = result[name]
    if scope.filter_query is not None:
        inner = inner[name]
    return inner


class AggregateSearchRequest:
    """
    A size=0 search whose only purpose is to compute `aggs` over the documents matching `query`.

    Results come back under the caller's aggregation names, with any nested/filter wrappers
    added by `scope` already stripped.
    """

    def __init__(self, elasticsearch, query: Optional[PreparedQuery], aggs: Optional[Dict[str, Any]],
                 scope: Optional[NestedScope] = None, raw_body: Optional[Dict[str, Any]] = None) -> None:
        self.elasticsearch = elasticsearch
        self.query = query
        self.aggs = aggs
        self.scope = scope
        self.raw_body = raw_body

    @classmethod
    def from_raw(cls, elasticsearch, body: Dict[str, Any]) -> "AggregateSearchRequest":
        return cls(elasticsearch, None, None, raw_body=body)

    def body(self) -> Dict[str, Any]:
        if self.raw_body is not None:
            return self.raw_body
        return {
            "size": 0,
            "query": self.query.query_dsl,
            "aggs": self.aggs,
        }

    def _parse(self, body) -> Dict[str, Any]:
        aggregations = json_parser(body)[AGGREGATIONS_KEY]
        if self.raw_body is not None or self.scope is None:
            return aggregations
        return {name: unwrap_nested_result(name, aggregations[name], self.scope) for name in self.aggs}

    def execute(self) -> Dict[str, Any]:
        url = f"{self.elasticsearch.alias_url()}/_search"
        return execute_json_request(HttpMethod.POST, url, self.body(), self._parse,
                                    auth=self.elasticsearch.auth, transport=self.elasticsearch.transport)
