import logging
import sys
import pytest

from search_link.models.transport import TransportConfig, configure_transport, reset_transport
from tests.utils import insecure_ssl_context


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging to a clean state before each test."""
    root_logger = logging.getLogger()
    # Clear all handlers
    root_logger.handlers.clear()
    # Add a fresh stderr handler
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter('%(levelname)s - %(name)s - %(message)s'))
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)
    yield


@pytest.fixture(autouse=True)
def shared_transport():
    """Every test starts without a shared transport, configured to accept any certificate."""
    reset_transport()
    configure_transport(TransportConfig(), ssl_context=insecure_ssl_context())
    yield
    reset_transport()
