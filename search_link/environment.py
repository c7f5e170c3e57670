import logging
from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from cerberus import Validator

from search_link.models.elasticsearch import Elasticsearch
from search_link.models.index_options import IndexOptions
from search_link.models.transport import TransportConfig

logger = logging.getLogger(__name__)


SCHEMA = {
    "index": {"type": "dict", "required": True},
    "transport": {"type": "dict", "required": False},
}


class Environment:
    index_options: IndexOptions
    transport_config: TransportConfig
    config: Dict

    def __init__(self, config: Optional[Dict] = None, config_file: Optional[Union[str, Path]] = None):
        """
        Initialize the environment either from a configuration file or a direct configuration object.

        :param config: Direct configuration object (overrides config_file).
        :param config_file: Path to the YAML config file.
        """
        if isinstance(config, Dict):
            self.config = config
            logger.info("Using provided config")
        elif config_file:
            logger.info(f"Loading config file: {config_file}")
            with open(config_file) as f:
                self.config = yaml.safe_load(f)
        else:
            raise ValueError("Either config or config_file must be provided.")

        v = Validator(SCHEMA)
        if not isinstance(self.config, Dict) or not v.validate(self.config):
            errors = v.errors if isinstance(self.config, Dict) else "config must be a mapping"
            logger.error(f"Config file validation errors: {errors}")
            raise ValueError("Invalid config file", errors)

        self.index_options = IndexOptions.from_config(self.config["index"])
        logger.info(f"Index options initialized: {self.index_options}")
        self.transport_config = TransportConfig(self.config.get("transport"))

    def elasticsearch(self) -> Elasticsearch:
        return Elasticsearch(self.index_options)
