import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

from requests.auth import HTTPBasicAuth

from search_link.models.aggregations import (SINGLE_AGG_NAME, AggregateSearchRequest, apply_nested_scope,
                                             resolve_nested_scope)
from search_link.models.bulk import BulkRequest, compute_bulk_concurrency
from search_link.models.errors import ElasticsearchError
from search_link.models.executor import (HttpMethod, execute_json_request, ignore_body, json_parser,
                                         text_parser)
from search_link.models.index_options import IndexOptions
from search_link.models.prepared_query import PreparedQuery
from search_link.models.schema import MappingSchema, SchemaLookup
from search_link.models.transport import Transport, cpu_count, get_transport

logger = logging.getLogger(__name__)


class Elasticsearch:
    """
    Requests against one index (and its alias) on an Elasticsearch cluster.
    """

    options: IndexOptions

    def __init__(self, options: IndexOptions, transport: Optional[Transport] = None,
                 schema: Optional[SchemaLookup] = None) -> None:
        self.options = options
        self._transport = transport
        self.schema = schema if schema is not None else MappingSchema(self)
        self.auth = HTTPBasicAuth(*options.basic_auth) if options.basic_auth else None

    @property
    def transport(self) -> Transport:
        return self._transport or get_transport()

    @property
    def index_name(self) -> str:
        return self.options.index_name

    @property
    def alias_name(self) -> str:
        return self.options.alias

    @property
    def type_name(self) -> str:
        return self.options.type_name

    def url(self) -> str:
        return self.options.url

    def base_url(self) -> str:
        return f"{self.options.url}{self.options.index_name}"

    def alias_url(self) -> str:
        return f"{self.options.url}{self.options.alias}"

    def _json(self, method: HttpMethod, url: str, post_data=None, response_parser=json_parser):
        return execute_json_request(method, url, post_data, response_parser, auth=self.auth,
                                    transport=self.transport)

    def arbitrary_request(self, method: HttpMethod, endpoint: str, post_data: Optional[Any] = None) -> str:
        """
        Send any request and return the raw response text. An endpoint starting with `/` is relative
        to the cluster url, anything else is relative to the index.
        """
        if endpoint.startswith("/"):
            url = self.url() + endpoint[1:]
        else:
            url = f"{self.base_url()}/{endpoint}"
        return self._json(method, url, post_data, text_parser)

    def create_index(self, mapping: Dict[str, Any]) -> None:
        body: Dict[str, Any] = {
            "settings": {"index": {"number_of_shards": self.options.shards}},
            "mappings": mapping,
        }
        if self.alias_name != self.index_name:
            body["aliases"] = {self.alias_name: {}}
        logger.info(f"Creating index {self.index_name} with {self.options.shards} shards")
        self._json(HttpMethod.PUT, self.base_url(), body, ignore_body)

    def delete_index(self) -> None:
        logger.info(f"Deleting index {self.index_name}")
        self._json(HttpMethod.DELETE, self.base_url(), response_parser=ignore_body)

    def refresh_index(self) -> None:
        self._json(HttpMethod.POST, f"{self.base_url()}/_refresh", response_parser=ignore_body)

    def _alias_action(self, action: str, alias_name: str) -> None:
        body = {"actions": [{action: {"index": self.index_name, "alias": alias_name}}]}
        self._json(HttpMethod.POST, f"{self.url()}_aliases", body, ignore_body)

    def add_alias(self, alias_name: str) -> None:
        self._alias_action("add", alias_name)

    def remove_alias(self, alias_name: str) -> None:
        self._alias_action("remove", alias_name)

    def get_mapping(self) -> Dict[str, Any]:
        return self._json(HttpMethod.GET, f"{self.base_url()}/_mapping")

    def get_settings(self) -> Dict[str, Any]:
        return self._json(HttpMethod.GET, f"{self.base_url()}/_settings")

    def cat(self, endpoint: str) -> Any:
        return self._json(HttpMethod.GET, f"{self.url()}_cat/{endpoint}?format=json")

    def count(self, query: PreparedQuery) -> int:
        return self._json(HttpMethod.POST, f"{self.alias_url()}/_count", {"query": query.query_dsl},
                          lambda body: int(json_parser(body)["count"]))

    def get_document(self, doc_id: str, realtime: bool = False) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url()}/_doc/{quote(doc_id, safe='')}?realtime={str(realtime).lower()}"
        try:
            return self._json(HttpMethod.GET, url, response_parser=lambda body: json_parser(body)["_source"])
        except ElasticsearchError as e:
            if e.is_404():
                return None
            raise

    def start_bulk(self) -> BulkRequest:
        concurrency = compute_bulk_concurrency(self.options.shards, cpu_count(), self.options.bulk_concurrency)
        return BulkRequest(self, concurrency, self.options.batch_size)

    def aggregate(self, field: Optional[str], need_filter: bool, query: PreparedQuery,
                  agg_request: Dict[str, Any]) -> AggregateSearchRequest:
        return self.aggregate_set(field, need_filter, query, {SINGLE_AGG_NAME: agg_request})

    def arbitrary_aggregate(self, field: Optional[str], need_filter: bool, query: PreparedQuery,
                            agg_request: Any) -> AggregateSearchRequest:
        if not isinstance(agg_request, dict):
            raise ValueError("Arbitrary aggregate must be a JSON object of named aggregations")
        return self.aggregate_set(field, need_filter, query, agg_request)

    def aggregate_set(self, field: Optional[str], need_filter: bool, query: PreparedQuery,
                      aggs: Dict[str, Any]) -> AggregateSearchRequest:
        scope = resolve_nested_scope(field, need_filter, query, self.schema)
        return AggregateSearchRequest(self, query, apply_nested_scope(scope, aggs), scope=scope)

    def raw_json_aggregate(self, agg_request: Dict[str, Any]) -> AggregateSearchRequest:
        return AggregateSearchRequest.from_raw(self, agg_request)
