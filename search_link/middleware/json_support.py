import json
from typing import Any, Callable, Tuple

import yaml

from search_link.models.utils import ExitCode


def support_json_return() -> Callable[[Callable[..., Tuple[ExitCode, Any]]], Callable[..., Tuple[ExitCode, str]]]:
    def decorator(func: Callable[..., Tuple[ExitCode, Any]]) -> Callable[..., Tuple[ExitCode, str]]:
        def wrapper(*args, as_json=False, **kwargs) -> Tuple[ExitCode, str]:
            exit_code, result = func(*args, **kwargs)
            # failure messages are already plain text
            if exit_code != ExitCode.SUCCESS or isinstance(result, str):
                return exit_code, result
            if as_json:
                return exit_code, json.dumps(result)
            return exit_code, yaml.safe_dump(result)
        return wrapper
    return decorator
