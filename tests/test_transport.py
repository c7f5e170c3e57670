import ssl
import threading

import pytest

from search_link.models import transport as transport_module
from search_link.models.errors import TransportInitError
from search_link.models.transport import (DEFAULT_READ_TIMEOUT_SECONDS, TLSAdapter, Transport,
                                          TransportConfig, build_ssl_context, configure_transport,
                                          get_transport, reset_transport)
from tests.utils import insecure_ssl_context

TEST_URL = "https://elasticsearch:9200/"


def mock_default_context(mocker, ca_count):
    context = mocker.MagicMock(spec=ssl.SSLContext)
    context.cert_store_stats.return_value = {"x509_ca": ca_count, "crl": 0, "x509": ca_count}
    mocker.patch("search_link.models.transport.ssl.create_default_context", return_value=context)
    return context


def test_transport_config_defaults(mocker):
    mocker.patch("search_link.models.transport.cpu_count", return_value=6)
    config = TransportConfig()

    assert config.read_timeout == DEFAULT_READ_TIMEOUT_SECONDS == 3600
    assert config.connect_timeout is None
    assert config.max_idle_connections_per_host == 6
    assert config.ca_certs is None
    assert config.timeout == (None, 3600)


def test_transport_config_from_values():
    config = TransportConfig({
        "read_timeout_seconds": 30,
        "connect_timeout_seconds": 5,
        "max_idle_connections_per_host": 2,
        "user_agent_extra": "indexer/1.0",
    })
    assert config.timeout == (5, 30)
    assert config.max_idle_connections_per_host == 2
    assert config.user_agent_extra == "indexer/1.0"


def test_transport_config_rejects_invalid_values():
    with pytest.raises(ValueError) as excinfo:
        TransportConfig({"max_idle_connections_per_host": 0, "read_timeout_seconds": "forever"})
    assert "Invalid config for transport" in excinfo.value.args[0]
    errors = excinfo.value.args[1]["transport"][0]
    assert "max_idle_connections_per_host" in errors
    assert "read_timeout_seconds" in errors


def test_config_cannot_disable_certificate_checks():
    with pytest.raises(ValueError) as excinfo:
        TransportConfig({"allow_insecure": True})
    assert "allow_insecure" in excinfo.value.args[1]["transport"][0]


def test_built_context_always_verifies(mocker):
    context = mock_default_context(mocker, 140)
    transport = Transport(TransportConfig())
    assert transport.session.get_adapter(TEST_URL).ssl_context is context
    assert transport.session.verify is True


def test_injected_context_replaces_the_trust_store(mocker):
    create_default_context = mocker.patch("search_link.models.transport.ssl.create_default_context")
    context = insecure_ssl_context()
    transport = Transport(TransportConfig(), ssl_context=context)

    create_default_context.assert_not_called()
    assert transport.session.get_adapter(TEST_URL).ssl_context is context
    assert transport.session.verify is False


def test_verifying_context_loads_extra_ca_bundle(mocker):
    context = mock_default_context(mocker, 140)
    assert build_ssl_context(TransportConfig({"ca_certs": "/etc/ssl/custom.pem"})) is context
    context.load_verify_locations.assert_called_once_with(cafile="/etc/ssl/custom.pem")


def test_unreadable_ca_bundle_is_init_error(mocker):
    context = mock_default_context(mocker, 140)
    context.load_verify_locations.side_effect = FileNotFoundError("no such file")
    with pytest.raises(TransportInitError) as excinfo:
        build_ssl_context(TransportConfig({"ca_certs": "/missing.pem"}))
    assert "/missing.pem" in str(excinfo.value)


def test_empty_trust_store_falls_back_to_certifi(mocker):
    context = mock_default_context(mocker, 0)
    context.cert_store_stats.side_effect = [{"x509_ca": 0}, {"x509_ca": 120}]
    mocker.patch("search_link.models.transport.certifi.where", return_value="/certifi/cacert.pem")

    assert build_ssl_context(TransportConfig()) is context
    context.load_verify_locations.assert_called_once_with(cafile="/certifi/cacert.pem")


def test_no_valid_certificates_is_init_error(mocker):
    mock_default_context(mocker, 0)
    mocker.patch("search_link.models.transport.certifi.where", return_value="/certifi/cacert.pem")
    with pytest.raises(TransportInitError) as excinfo:
        Transport(TransportConfig())
    assert "no valid CA certificates" in str(excinfo.value)


def test_transport_pool_and_retries():
    transport = Transport(TransportConfig({"max_idle_connections_per_host": 3}), ssl_context=insecure_ssl_context())
    adapter = transport.session.get_adapter(TEST_URL)

    assert isinstance(adapter, TLSAdapter)
    assert adapter is transport.session.get_adapter("http://elasticsearch:9200/")
    assert adapter._pool_maxsize == 3
    assert adapter._pool_connections == 3
    assert adapter.max_retries.total == 0
    assert transport.session.verify is False
    transport.close()


def test_requests_are_streamed_with_the_configured_timeouts(requests_mock):
    requests_mock.get(TEST_URL, text="{}")
    transport = Transport(TransportConfig({"connect_timeout_seconds": 10}), ssl_context=insecure_ssl_context())
    transport.request("GET", TEST_URL)

    assert requests_mock.last_request.timeout == (10, 3600)
    assert requests_mock.last_request.stream is True


def test_user_agent_extra_is_appended(requests_mock):
    requests_mock.get(TEST_URL, text="{}")
    transport = Transport(TransportConfig({"user_agent_extra": "indexer/1.0"}), ssl_context=insecure_ssl_context())
    transport.request("GET", TEST_URL)

    user_agent = requests_mock.last_request.headers["User-Agent"]
    assert user_agent.startswith("python-requests/")
    assert user_agent.endswith(" indexer/1.0")


def test_get_transport_uses_configured_settings():
    transport = get_transport()
    assert transport.config.read_timeout == 3600
    assert transport.session.verify is False
    assert get_transport() is transport


def test_shared_transport_is_created_once_across_threads(mocker):
    constructor = mocker.patch("search_link.models.transport.Transport", wraps=Transport)
    barrier = threading.Barrier(8)
    seen = []

    def use_transport():
        barrier.wait()
        seen.append(get_transport())

    threads = [threading.Thread(target=use_transport) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert constructor.call_count == 1
    assert len(seen) == 8
    assert all(transport is seen[0] for transport in seen)


def test_configure_after_first_use_is_rejected():
    get_transport()
    with pytest.raises(RuntimeError):
        configure_transport(TransportConfig(), ssl_context=insecure_ssl_context())


def test_reset_discards_the_shared_transport():
    first = get_transport()
    reset_transport()
    assert transport_module._transport is None
    configure_transport(TransportConfig(), ssl_context=insecure_ssl_context())
    assert get_transport() is not first


def test_init_failure_is_reported_on_first_use(mocker):
    reset_transport()
    mock_default_context(mocker, 0)
    mocker.patch("search_link.models.transport.certifi.where", return_value="/certifi/cacert.pem")
    configure_transport(TransportConfig())
    with pytest.raises(TransportInitError):
        get_transport()
    assert transport_module._transport is None
