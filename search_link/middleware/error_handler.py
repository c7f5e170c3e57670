import logging
from typing import Any, Callable, Tuple

from search_link.models.elasticsearch import Elasticsearch
from search_link.models.errors import ElasticsearchError
from search_link.models.utils import ExitCode

logger = logging.getLogger(__name__)


def handle_errors(on_success: Callable[[Any], Tuple[ExitCode, Any]] = lambda result: (ExitCode.SUCCESS, result)
                  ) -> Callable[..., Tuple[ExitCode, Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Tuple[ExitCode, Any]]:
        def wrapper(elasticsearch: Elasticsearch, *args, **kwargs) -> Tuple[ExitCode, Any]:
            try:
                result = func(elasticsearch, *args, **kwargs)
            except (ElasticsearchError, ValueError, RuntimeError) as e:
                logger.error(f"Failed to {func.__name__} on {elasticsearch.index_name}: {e}")
                return ExitCode.FAILURE, f"Failure on {func.__name__} for index {elasticsearch.index_name}: " \
                                         f"{type(e).__name__} {e}"
            return on_success(result)
        return wrapper
    return decorator
