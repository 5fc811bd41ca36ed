import ssl
from unittest.mock import MagicMock, patch

import pytest

from ws_token_proxy.core.upstream_connector import AUTH_HEADER, UpstreamConnector, create_ssl_context
from ws_token_proxy.exceptions import UpstreamConnectError

TOKEN = "tok-1234567890-abcd"


def _open(connector):
    with patch("ws_token_proxy.core.upstream_connector.connect") as connect:
        connect.return_value = MagicMock(name="connecting")
        result = connector.open("client-1")
    return connect, result


def test_auth_header_carries_exact_token():
    connector = UpstreamConnector("wss://broker.example/ws", TOKEN)
    assert connector.build_headers() == {AUTH_HEADER: TOKEN}
    assert AUTH_HEADER == "X-Auth-Token"


def test_token_is_masked_for_logs():
    connector = UpstreamConnector("wss://broker.example/ws", TOKEN)
    assert connector.masked_token == "tok-...abcd"
    assert TOKEN not in str(connector.describe_headers())


def test_open_passes_header_and_subprotocols():
    connector = UpstreamConnector(
        "ws://broker.example/ws",
        TOKEN,
        subprotocols=["v1.feed"],
        connect_options={"ping_interval": 30, "open_timeout": None},
    )
    connect, result = _open(connector)

    assert result is connect.return_value
    args, kwargs = connect.call_args
    assert args == ("ws://broker.example/ws",)
    assert kwargs["additional_headers"] == {"X-Auth-Token": TOKEN}
    assert kwargs["subprotocols"] == ["v1.feed"]
    assert kwargs["ping_interval"] == 30
    assert "ssl" not in kwargs


def test_no_subprotocol_option_without_client_request():
    connect, _ = _open(UpstreamConnector("ws://broker.example/ws", TOKEN))
    assert "subprotocols" not in connect.call_args.kwargs


def test_wss_verifies_certificates_by_default():
    connect, _ = _open(UpstreamConnector("wss://broker.example/ws", TOKEN))
    context = connect.call_args.kwargs["ssl"]
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname is True


def test_wss_verification_can_be_disabled():
    connect, _ = _open(UpstreamConnector("wss://broker.example/ws", TOKEN, verify_tls=False))
    context = connect.call_args.kwargs["ssl"]
    assert context.verify_mode == ssl.CERT_NONE
    assert context.check_hostname is False


def test_create_ssl_context_modes():
    assert create_ssl_context(True).verify_mode == ssl.CERT_REQUIRED
    assert create_ssl_context(False).verify_mode == ssl.CERT_NONE


@pytest.mark.parametrize("address", ["ws://", "ws://host#fragment", "ws://host:99999/", "ws://user@host/"])
def test_unusable_address_fails_synchronously(address):
    connector = UpstreamConnector(address, TOKEN)
    with pytest.raises(UpstreamConnectError) as excinfo:
        connector.open()
    assert excinfo.value.address == address


def test_open_does_not_touch_the_network():
    connector = UpstreamConnector("ws://127.0.0.1:9/", TOKEN)
    connecting = connector.open()
    assert hasattr(connecting, "__await__")
