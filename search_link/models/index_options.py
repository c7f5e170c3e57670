from dataclasses import dataclass, replace
import logging
from typing import Dict, Optional

from cerberus import Validator

logger = logging.getLogger(__name__)

DEFAULT_TYPE_NAME = "_doc"
DEFAULT_SHARDS = 5
DEFAULT_BULK_CONCURRENCY = 12
DEFAULT_BATCH_SIZE = 8 * 1024 * 1024

SCHEMA = {
    "index": {
        "type": "dict",
        "schema": {
            "url": {"type": "string", "required": True, "empty": False},
            "index_name": {"type": "string", "required": True, "empty": False},
            "alias": {"type": "string", "required": False, "empty": False},
            "shards": {"type": "integer", "min": 1, "required": False},
            "bulk_concurrency": {"type": "integer", "min": 1, "required": False},
            "batch_size": {"type": "integer", "min": 1, "required": False},
            "type_name": {"type": "string", "required": False, "empty": False},
            "basic_auth": {
                "type": "dict",
                "required": False,
                "schema": {
                    "username": {"type": "string", "required": True, "empty": False},
                    "password": {"type": "string", "required": True, "empty": False},
                }
            },
        }
    }
}


@dataclass(frozen=True)
class IndexOptions:
    """
    Read-only connection and sizing parameters for one Elasticsearch index.
    """

    url: str
    index_name: str
    alias: str
    shards: int = DEFAULT_SHARDS
    bulk_concurrency: int = DEFAULT_BULK_CONCURRENCY
    batch_size: int = DEFAULT_BATCH_SIZE
    type_name: str = DEFAULT_TYPE_NAME
    basic_auth: Optional[tuple] = None

    @classmethod
    def from_config(cls, config: Dict) -> "IndexOptions":
        logger.info(f"Initializing index options for index: {config.get('index_name')}")
        v = Validator(SCHEMA)
        if not v.validate({'index': config}):
            raise ValueError("Invalid config for index options", v.errors)

        url = config["url"]
        # Normalize url value to have trailing slash
        if not url.endswith("/"):
            url += "/"
        basic_auth = None
        if "basic_auth" in config:
            basic_auth = (config["basic_auth"]["username"], config["basic_auth"]["password"])

        return cls(url=url,
                   index_name=config["index_name"],
                   alias=config.get("alias", config["index_name"]),
                   shards=config.get("shards", DEFAULT_SHARDS),
                   bulk_concurrency=config.get("bulk_concurrency", DEFAULT_BULK_CONCURRENCY),
                   batch_size=config.get("batch_size", DEFAULT_BATCH_SIZE),
                   type_name=config.get("type_name", DEFAULT_TYPE_NAME),
                   basic_auth=basic_auth)

    def replace(self, **changes) -> "IndexOptions":
        return replace(self, **changes)

    def __repr__(self) -> str:
        # keep credentials out of logs
        auth = "set" if self.basic_auth else None
        return (f"IndexOptions(url={self.url!r}, index_name={self.index_name!r}, alias={self.alias!r}, "
                f"shards={self.shards}, bulk_concurrency={self.bulk_concurrency}, batch_size={self.batch_size}, "
                f"type_name={self.type_name!r}, basic_auth={auth})")
