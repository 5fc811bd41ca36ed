from http import HTTPStatus

import pytest
from websockets.datastructures import Headers

from ws_token_proxy.core.validator import (
    Accepted,
    Rejected,
    origin_allowed,
    parse_subprotocols,
    summarize_request,
    validate_upgrade_request,
)

SERVER = "wss://api.broker.example/ws"


def _path(**params):
    return "/?" + "&".join(f"{key}={value}" for key, value in params.items())


def test_accepts_token_and_server():
    result = validate_upgrade_request(_path(token="abc", server=SERVER), Headers())
    assert result == Accepted(token="abc", upstream_address=SERVER, client_subprotocols=[])


@pytest.mark.parametrize("path", ["/", "/?server=" + SERVER, "/?token=&server=" + SERVER])
def test_missing_token_is_rejected_first(path):
    assert validate_upgrade_request(path, Headers()) == Rejected(HTTPStatus.BAD_REQUEST, "Missing token parameter")


@pytest.mark.parametrize("path", ["/?token=abc", "/?token=abc&server="])
def test_missing_server(path):
    assert validate_upgrade_request(path, Headers()) == Rejected(HTTPStatus.BAD_REQUEST, "Missing server parameter")


@pytest.mark.parametrize("server", ["http://x", "ftp://x", "WS://x", "wss:/x", " ws://x"])
def test_server_scheme_must_be_ws_or_wss(server):
    result = validate_upgrade_request(_path(token="abc", server=server.replace(" ", "%20")), Headers())
    assert isinstance(result, Rejected)
    assert result.status == HTTPStatus.BAD_REQUEST
    assert result.reason.startswith("Invalid server parameter")


def test_missing_token_wins_over_bad_origin():
    headers = Headers({"Origin": "https://b.com"})
    result = validate_upgrade_request("/?server=http://x", headers, ["https://a.com"])
    assert result.reason == "Missing token parameter"


def test_origin_not_in_allow_list_is_forbidden():
    headers = Headers({"Origin": "https://b.com"})
    result = validate_upgrade_request(_path(token="abc", server=SERVER), headers, ["https://a.com"])
    assert result == Rejected(HTTPStatus.FORBIDDEN, "Origin not allowed")


@pytest.mark.parametrize(
    "origin, allowed",
    [
        ("https://a.com", ["https://a.com"]),
        ("https://b.com", ["*"]),
        ("https://b.com", ["https://a.com", "*"]),
        (None, ["https://a.com"]),
        ("https://anything.example", []),
    ],
)
def test_origin_passes(origin, allowed):
    headers = Headers()
    if origin is not None:
        headers["Origin"] = origin
    result = validate_upgrade_request(_path(token="abc", server=SERVER), headers, allowed)
    assert isinstance(result, Accepted)


def test_origin_allowed_requires_exact_match():
    assert not origin_allowed("https://a.com/", ["https://a.com"])
    assert not origin_allowed("http://a.com", ["https://a.com"])


def test_subprotocols_are_extracted():
    headers = Headers()
    headers["Sec-WebSocket-Protocol"] = "v1.proto, v2.proto"
    headers["Sec-WebSocket-Protocol"] = "v3.proto"
    result = validate_upgrade_request(_path(token="abc", server=SERVER), headers)
    assert result.client_subprotocols == ["v1.proto", "v2.proto", "v3.proto"]


def test_parse_subprotocols_handles_empty_values():
    assert parse_subprotocols(None) == []
    assert parse_subprotocols(" , chat ,") == ["chat"]


def test_url_encoded_server_is_decoded():
    result = validate_upgrade_request("/?token=abc&server=wss%3A%2F%2Fhost%2Fpath%3Fa%3D1", Headers())
    assert result.upstream_address == "wss://host/path?a=1"


def test_plain_dict_headers_are_supported():
    result = validate_upgrade_request(_path(token="abc", server=SERVER), {"Origin": "https://a.com"}, ["https://a.com"])
    assert isinstance(result, Accepted)


def test_summary_masks_token_and_reports_presence():
    summary = summarize_request("/feed?token=supersecret&server=", Headers({"Origin": "https://a.com"}))
    assert summary.path == "/feed"
    assert summary.origin == "https://a.com"
    assert summary.has_token is True
    assert summary.token == "supe...cret"
    assert summary.has_server is False
    assert "supersecret" not in repr(summary)


def test_summary_without_token_is_masked_placeholder():
    summary = summarize_request("/?server=ws://x", Headers())
    assert summary.token == "****"
    assert summary.has_token is False
