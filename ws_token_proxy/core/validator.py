"""
Upgrade Request Validator

Decides whether an incoming WebSocket upgrade may be tunnelled, and extracts
the routing parameters (token, upstream address, requested subprotocols).
"""

from http import HTTPStatus
from typing import List, Mapping, NamedTuple, Optional, Sequence, Union
from urllib.parse import parse_qs, urlsplit

from ..utils.logging import mask_token

ALLOWED_SCHEMES = ('ws://', 'wss://')
WILDCARD_ORIGIN = '*'


class Accepted(NamedTuple):
    token: str
    upstream_address: str
    client_subprotocols: List[str]


class Rejected(NamedTuple):
    status: HTTPStatus
    reason: str


ValidationResult = Union[Accepted, Rejected]


class RequestSummary(NamedTuple):
    """What gets logged for every inbound attempt; the token is masked"""
    path: str
    origin: Optional[str]
    token: str                        # masked
    has_token: bool
    has_server: bool


def _header_values(headers, name: str) -> List[str]:
    """All values of a header; websockets Headers may hold repeated fields"""
    if hasattr(headers, 'get_all'):
        return headers.get_all(name)
    value = headers.get(name)
    return [value] if value is not None else []


def _first_header(headers, name: str) -> Optional[str]:
    values = _header_values(headers, name)
    return values[0] if values else None


def _first(query: Mapping[str, List[str]], name: str) -> Optional[str]:
    values = query.get(name)
    return values[0] if values else None


def parse_subprotocols(header_value: Optional[str]) -> List[str]:
    """Split a Sec-WebSocket-Protocol header into its offered values"""
    if not header_value:
        return []
    return [value.strip() for value in header_value.split(',') if value.strip()]


def origin_allowed(origin: Optional[str], allowed_origins: Sequence[str]) -> bool:
    """
    Check an Origin header against the allow-list.

    Requests without an Origin header are not origin-restricted, and an empty
    allow-list lets every origin through.
    """
    if not allowed_origins or not origin:
        return True
    return WILDCARD_ORIGIN in allowed_origins or origin in allowed_origins


def summarize_request(path: str, headers) -> RequestSummary:
    split = urlsplit(path)
    query = parse_qs(split.query)
    token = _first(query, 'token')
    return RequestSummary(
        path=split.path or '/',
        origin=_first_header(headers, 'Origin'),
        token=mask_token(token),
        has_token=bool(token),
        has_server=bool(_first(query, 'server')),
    )


def validate_upgrade_request(path: str, headers, allowed_origins: Sequence[str] = ()) -> ValidationResult:
    """
    Validate an upgrade request. The first failing rule wins.

    Args:
        path: Request target including the query string
        headers: Case-insensitive header mapping
        allowed_origins: Configured origin allow-list (may be empty)

    Returns:
        Accepted with the routing parameters, or Rejected with an HTTP status
    """
    query = parse_qs(urlsplit(path).query)
    token = _first(query, 'token')
    server = _first(query, 'server')

    if not token:
        return Rejected(HTTPStatus.BAD_REQUEST, 'Missing token parameter')

    if not server:
        return Rejected(HTTPStatus.BAD_REQUEST, 'Missing server parameter')

    if not server.startswith(ALLOWED_SCHEMES):
        return Rejected(
            HTTPStatus.BAD_REQUEST,
            'Invalid server parameter (must start with ws:// or wss://)'
        )

    if not origin_allowed(_first_header(headers, 'Origin'), allowed_origins):
        return Rejected(HTTPStatus.FORBIDDEN, 'Origin not allowed')

    return Accepted(
        token=token,
        upstream_address=server,
        client_subprotocols=parse_subprotocols(', '.join(_header_values(headers, 'Sec-WebSocket-Protocol'))),
    )
