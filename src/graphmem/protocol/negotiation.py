"""Protocol version negotiation for the ``initialize`` handshake."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from graphmem.protocol.errors import (
    InvalidParamsError,
    ProtocolVersionMismatchError,
    ServerNotInitializedError,
)
from graphmem.protocol.models import InitializeParams, InitializeResult, ServerInfo

if TYPE_CHECKING:
    from graphmem.config import ServerSettings

logger = logging.getLogger(__name__)

# Methods that are always served, even under strict gating.
_UNGATED = frozenset({"initialize", "ping"})


class SessionState(str, Enum):
    """Handshake progress of one connection."""

    UNVERSIONED = "unversioned"
    NEGOTIATED = "negotiated"
    INITIALIZED = "initialized"


class ProtocolNegotiator:
    """Per-connection handshake state machine.

    ``UNVERSIONED`` -> ``NEGOTIATED`` on a successful ``initialize``;
    ``NEGOTIATED`` -> ``INITIALIZED`` when the client confirms with
    ``notifications/initialized``.  A failed ``initialize`` leaves the state
    untouched.  Other methods are only gated when
    ``settings.require_initialize`` is set.
    """

    def __init__(self, settings: ServerSettings) -> None:
        self._settings = settings
        self.state = SessionState.UNVERSIONED
        self.protocol_version: str | None = None
        self.client_name: str | None = None

    @property
    def supported_versions(self) -> list[str]:
        return list(self._settings.protocol_versions)

    def initialize(self, params: dict[str, Any]) -> InitializeResult:
        """Negotiate a protocol version.

        Raises:
            InvalidParamsError: ``protocolVersion`` is missing or not a string.
            ProtocolVersionMismatchError: The version is not supported.
        """
        try:
            parsed = InitializeParams.model_validate(params)
        except ValidationError as exc:
            raise InvalidParamsError(
                "initialize requires a string 'protocolVersion'",
                data={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc

        requested = parsed.protocol_version
        if requested not in self._settings.protocol_versions:
            logger.warning(
                "Client %s requested unsupported protocol version %r",
                parsed.client_info.name,
                requested,
            )
            raise ProtocolVersionMismatchError(requested, self.supported_versions)

        self.protocol_version = requested
        self.client_name = parsed.client_info.name
        if self.state is SessionState.UNVERSIONED:
            self.state = SessionState.NEGOTIATED
        logger.info("Negotiated protocol %s with client %s", requested, self.client_name)

        return InitializeResult(
            protocol_version=requested,
            capabilities={"tools": {"listChanged": False}},
            server_info=ServerInfo(name=self._settings.name, version=self._settings.version),
            instructions=self._settings.instructions,
        )

    def mark_initialized(self) -> None:
        """Handle the client's ``notifications/initialized``."""
        if self.state is SessionState.NEGOTIATED:
            self.state = SessionState.INITIALIZED

    def check_ready(self, method: str) -> None:
        """Raise if *method* may not run yet under strict gating."""
        if not self._settings.require_initialize or method in _UNGATED:
            return
        if self.state is SessionState.UNVERSIONED:
            raise ServerNotInitializedError(method)
