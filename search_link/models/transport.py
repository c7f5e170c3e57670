import logging
import os
import ssl
import threading
from typing import Dict, Optional

import certifi
import requests
import requests.utils
from cerberus import Validator
from requests.adapters import HTTPAdapter

from search_link.models.errors import TransportInitError

logger = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT_SECONDS = 3600

SCHEMA = {
    "transport": {
        "type": "dict",
        "schema": {
            "read_timeout_seconds": {"type": "number", "min": 1, "required": False},
            "connect_timeout_seconds": {"type": "number", "min": 1, "nullable": True, "required": False},
            "max_idle_connections_per_host": {"type": "integer", "min": 1, "required": False},
            "ca_certs": {"type": "string", "required": False},
            "user_agent_extra": {"type": "string", "required": False},
        }
    }
}


def cpu_count() -> int:
    return os.cpu_count() or 1


class TransportConfig:
    """
    Settings for the process-wide HTTP transport.
    """

    read_timeout: float = DEFAULT_READ_TIMEOUT_SECONDS
    connect_timeout: Optional[float] = None
    max_idle_connections_per_host: int
    ca_certs: Optional[str] = None
    user_agent_extra: Optional[str] = None

    def __init__(self, config: Optional[Dict] = None) -> None:
        config = config or {}
        logger.info(f"Initializing transport config with: {config}")
        v = Validator(SCHEMA)
        if not v.validate({'transport': config}):
            raise ValueError("Invalid config for transport", v.errors)

        self.read_timeout = config.get("read_timeout_seconds", DEFAULT_READ_TIMEOUT_SECONDS)
        self.connect_timeout = config.get("connect_timeout_seconds", None)
        # one idle connection per CPU, which is only really exercised during _bulk
        self.max_idle_connections_per_host = config.get("max_idle_connections_per_host", cpu_count())
        self.ca_certs = config.get("ca_certs", None)
        self.user_agent_extra = config.get("user_agent_extra", None)

    @property
    def timeout(self) -> tuple:
        return (self.connect_timeout, self.read_timeout)


def build_ssl_context(config: TransportConfig) -> ssl.SSLContext:
    # trust the platform's certificate store, plus any explicitly configured bundle
    context = ssl.create_default_context()
    if config.ca_certs:
        try:
            context.load_verify_locations(cafile=config.ca_certs)
        except (OSError, ssl.SSLError) as e:
            raise TransportInitError(f"could not load ca_certs from {config.ca_certs}: {e}") from e

    loaded = context.cert_store_stats().get("x509_ca", 0)
    if loaded == 0:
        # hashed capath directories are only read lazily, so fall back to the bundle requests ships with
        logger.info(f"Platform trust store reported no CA certificates, loading {certifi.where()}")
        try:
            context.load_verify_locations(cafile=certifi.where())
        except (OSError, ssl.SSLError) as e:
            logger.warning(f"Unable to load the certifi bundle: {e}")
        loaded = context.cert_store_stats().get("x509_ca", 0)
    if loaded == 0:
        raise TransportInitError("no valid CA certificates could be loaded, all HTTPS requests would fail")
    logger.debug(f"Loaded {loaded} CA certificates into the transport trust store")
    return context


class TLSAdapter(HTTPAdapter):
    def __init__(self, ssl_context: ssl.SSLContext, **kwargs) -> None:
        self.ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        kwargs["ssl_context"] = self.ssl_context
        return super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args, **kwargs):
        kwargs["ssl_context"] = self.ssl_context
        return super().proxy_manager_for(*args, **kwargs)


class Transport:
    """
    One pooled HTTP session shared by every request in the process. Requests are never retried here.

    Certificates are verified against `build_ssl_context(config)` unless an `ssl_context` is passed
    in, which is how tests point the transport at servers with self-signed certificates.
    """

    config: TransportConfig
    session: requests.Session

    def __init__(self, config: Optional[TransportConfig] = None,
                 ssl_context: Optional[ssl.SSLContext] = None) -> None:
        self.config = config or TransportConfig()
        context = ssl_context if ssl_context is not None else build_ssl_context(self.config)
        adapter = TLSAdapter(context,
                             pool_connections=self.config.max_idle_connections_per_host,
                             pool_maxsize=self.config.max_idle_connections_per_host,
                             max_retries=0)

        self.session = requests.Session()
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)
        # requests would otherwise force CERT_REQUIRED back onto the context
        self.session.verify = context.verify_mode != ssl.CERT_NONE
        if self.config.user_agent_extra:
            self.session.headers["User-Agent"] = (f"{requests.utils.default_user_agent()} "
                                                  f"{self.config.user_agent_extra}")
        logger.info(f"Transport initialized with read timeout {self.config.read_timeout}s and "
                    f"{self.config.max_idle_connections_per_host} connections per host")

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        return self.session.request(method, url, stream=True, timeout=self.config.timeout, **kwargs)

    def close(self) -> None:
        self.session.close()


_transport: Optional[Transport] = None
_pending_config: Optional[TransportConfig] = None
_pending_ssl_context: Optional[ssl.SSLContext] = None
_lock = threading.Lock()


def configure_transport(config: TransportConfig, ssl_context: Optional[ssl.SSLContext] = None) -> None:
    """Set the config and TLS context of the shared transport. Must happen before its first use."""
    global _pending_config, _pending_ssl_context
    with _lock:
        if _transport is not None:
            raise RuntimeError("The shared transport is already initialized")
        _pending_config = config
        _pending_ssl_context = ssl_context


def get_transport() -> Transport:
    global _transport
    if _transport is None:
        with _lock:
            if _transport is None:
                _transport = Transport(_pending_config, _pending_ssl_context)
    return _transport


def reset_transport() -> None:
    global _transport, _pending_config, _pending_ssl_context
    with _lock:
        if _transport is not None:
            _transport.close()
        _transport = None
        _pending_config = None
        _pending_ssl_context = None
