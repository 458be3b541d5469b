"""Request validation: classify a decoded JSON value as a JSON-RPC request."""

from __future__ import annotations

from typing import Any

from graphmem.protocol.errors import InvalidRequestError
from graphmem.protocol.models import JSONRPC_VERSION, JsonRpcRequest, RequestId

_MISSING = object()


def recoverable_id(payload: Any) -> RequestId:
    """Return the payload's ``id`` if it is a usable scalar, else ``None``."""
    if not isinstance(payload, dict):
        return None
    value = payload.get("id")
    # bool is an int subclass but never a valid id.
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        return None
    return value


def classify(payload: Any) -> JsonRpcRequest:
    """Validate the JSON-RPC 2.0 envelope of *payload*.

    Returns a :class:`JsonRpcRequest` (``is_notification`` is set when the
    ``id`` member is absent).

    Raises:
        InvalidRequestError: The envelope is malformed.  The error carries
            the request id whenever one can be recovered.
    """
    if not isinstance(payload, dict):
        raise InvalidRequestError("request must be a JSON object")

    request_id = recoverable_id(payload)
    raw_id = payload.get("id", _MISSING)
    if raw_id is not _MISSING and raw_id is not None and request_id is None:
        raise InvalidRequestError("id must be a string, an integer, or null")

    if payload.get("jsonrpc") != JSONRPC_VERSION:
        raise InvalidRequestError("jsonrpc must be exactly '2.0'", request_id=request_id)

    method = payload.get("method")
    if not isinstance(method, str) or not method:
        raise InvalidRequestError("method must be a non-empty string", request_id=request_id)

    params = payload.get("params", _MISSING)
    if params is _MISSING or params is None:
        params = {}
    elif not isinstance(params, dict):
        raise InvalidRequestError("params must be an object", request_id=request_id)

    return JsonRpcRequest(
        method=method,
        id=request_id,
        params=params,
        is_notification=raw_id is _MISSING,
    )
