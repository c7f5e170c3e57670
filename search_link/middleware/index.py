import json
import logging
from typing import IO, Any, Dict, Optional, Tuple

from search_link.middleware.error_handler import handle_errors
from search_link.middleware.json_support import support_json_return
from search_link.models.bulk import BulkResult, compute_bulk_concurrency
from search_link.models.elasticsearch import Elasticsearch
from search_link.models.errors import ElasticsearchError
from search_link.models.executor import HttpMethod
from search_link.models.prepared_query import PreparedQuery
from search_link.models.transport import cpu_count
from search_link.models.utils import ExitCode

logger = logging.getLogger(__name__)

DOC_ID_KEY = "_id"


def request(elasticsearch: Elasticsearch, endpoint: str, method: HttpMethod = HttpMethod.GET,
            post_data: Optional[Any] = None, null_on_error: bool = False) -> Tuple[ExitCode, Optional[str]]:
    try:
        return ExitCode.SUCCESS, elasticsearch.arbitrary_request(method, endpoint, post_data)
    except ElasticsearchError as e:
        if null_on_error:
            logger.info(f"Request to {endpoint} failed, returning nothing: {e}")
            return ExitCode.SUCCESS, None
        logger.error(f"Request to {endpoint} failed: {e}")
        return ExitCode.FAILURE, str(e)


@support_json_return()
@handle_errors()
def mapping(elasticsearch: Elasticsearch) -> Dict:
    return elasticsearch.get_mapping()


@support_json_return()
@handle_errors()
def count(elasticsearch: Elasticsearch, query: PreparedQuery) -> Dict:
    return {"count": elasticsearch.count(query)}


@support_json_return()
@handle_errors()
def aggregate(elasticsearch: Elasticsearch, aggs: Any, field: Optional[str] = None, need_filter: bool = True,
              query: Optional[PreparedQuery] = None) -> Dict:
    query = query or PreparedQuery()
    return elasticsearch.arbitrary_aggregate(field, need_filter, query, aggs).execute()


@support_json_return()
def bulk_concurrency(elasticsearch: Elasticsearch) -> Tuple[ExitCode, Dict]:
    options = elasticsearch.options
    cpus = cpu_count()
    return ExitCode.SUCCESS, {
        "shards": options.shards,
        "cpus": cpus,
        "bulk_concurrency": options.bulk_concurrency,
        "concurrency": compute_bulk_concurrency(options.shards, cpus, options.bulk_concurrency),
    }


@handle_errors(on_success=lambda result: (ExitCode.SUCCESS,
                                          f"Indexed {result.total_docs} documents in {result.total_batches} batches"))
def bulk_load(elasticsearch: Elasticsearch, source: IO[str]) -> BulkResult:
    """Index every line of `source` as a JSON document. A `_id` key, if present, becomes the document id."""
    with elasticsearch.start_bulk() as bulk:
        for line_number, line in enumerate(source, start=1):
            if not line.strip():
                continue
            try:
                doc = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"Line {line_number} is not valid JSON: {e}") from e
            if not isinstance(doc, dict):
                raise ValueError(f"Line {line_number} is not a JSON object")
            doc_id = doc.pop(DOC_ID_KEY, None)
            bulk.insert(doc, None if doc_id is None else str(doc_id))
        result = bulk.finish()
    return result
