import ssl
from typing import Iterable, List, Optional

from search_link.models.elasticsearch import Elasticsearch
from search_link.models.index_options import IndexOptions

TEST_URL = "http://elasticsearch:9200/"
TEST_INDEX = "test_index"
TEST_ALIAS = "test_alias"


def create_valid_options(**overrides) -> IndexOptions:
    config = {
        "url": TEST_URL,
        "index_name": TEST_INDEX,
        "alias": TEST_ALIAS,
        "shards": 5,
        "bulk_concurrency": 4,
        "batch_size": 1024,
    }
    config.update(overrides)
    return IndexOptions.from_config(config)


class StaticSchema:
    """Answers nested-field lookups from a fixed set of paths and records every lookup."""

    def __init__(self, nested_paths: Optional[Iterable[str]] = None) -> None:
        self.nested_paths = set(nested_paths or [])
        self.lookups: List[str] = []

    def is_nested_field(self, path: str) -> bool:
        self.lookups.append(path)
        return path in self.nested_paths


def create_elasticsearch(schema=None, **overrides) -> Elasticsearch:
    return Elasticsearch(create_valid_options(**overrides), schema=schema)


def insecure_ssl_context() -> ssl.SSLContext:
    """A client context that accepts any certificate, for test clusters with self-signed certificates."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context
