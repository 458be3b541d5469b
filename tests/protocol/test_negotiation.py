"""Tests for the initialize handshake."""

from __future__ import annotations

import pytest

from graphmem.config import ServerSettings
from graphmem.protocol.errors import (
    InvalidParamsError,
    ProtocolVersionMismatchError,
    ServerNotInitializedError,
)
from graphmem.protocol.negotiation import ProtocolNegotiator, SessionState


class TestInitialize:
    def test_echoes_supported_version(self, settings: ServerSettings) -> None:
        negotiator = ProtocolNegotiator(settings)
        result = negotiator.initialize(
            {"protocolVersion": "2025-06-18", "clientInfo": {"name": "inspector"}}
        ).to_wire()

        assert result["protocolVersion"] == "2025-06-18"
        assert result["serverInfo"] == {"name": "graphmem-test", "version": "9.9.9"}
        assert result["capabilities"] == {"tools": {"listChanged": False}}
        assert "instructions" not in result
        assert negotiator.state is SessionState.NEGOTIATED
        assert negotiator.client_name == "inspector"

    def test_older_version_accepted(self, settings: ServerSettings) -> None:
        negotiator = ProtocolNegotiator(settings)
        result = negotiator.initialize({"protocolVersion": "2024-11-05"})
        assert result.protocol_version == "2024-11-05"

    def test_instructions_included(self) -> None:
        negotiator = ProtocolNegotiator(ServerSettings(instructions="Use search_nodes first"))
        result = negotiator.initialize({"protocolVersion": "2025-06-18"}).to_wire()
        assert result["instructions"] == "Use search_nodes first"

    def test_unsupported_version(self, settings: ServerSettings) -> None:
        negotiator = ProtocolNegotiator(settings)
        with pytest.raises(ProtocolVersionMismatchError) as excinfo:
            negotiator.initialize({"protocolVersion": "1999-01-01"})

        assert excinfo.value.code == -32602
        assert excinfo.value.data["supported"] == settings.protocol_versions
        assert negotiator.state is SessionState.UNVERSIONED

    def test_missing_version(self, settings: ServerSettings) -> None:
        with pytest.raises(InvalidParamsError):
            ProtocolNegotiator(settings).initialize({})

    def test_reinitialize_keeps_state(self, settings: ServerSettings) -> None:
        negotiator = ProtocolNegotiator(settings)
        negotiator.initialize({"protocolVersion": "2025-06-18"})
        negotiator.mark_initialized()
        negotiator.initialize({"protocolVersion": "2025-03-26"})
        assert negotiator.state is SessionState.INITIALIZED
        assert negotiator.protocol_version == "2025-03-26"


class TestMarkInitialized:
    def test_after_negotiation(self, settings: ServerSettings) -> None:
        negotiator = ProtocolNegotiator(settings)
        negotiator.initialize({"protocolVersion": "2025-06-18"})
        negotiator.mark_initialized()
        assert negotiator.state is SessionState.INITIALIZED

    def test_before_negotiation_is_ignored(self, settings: ServerSettings) -> None:
        negotiator = ProtocolNegotiator(settings)
        negotiator.mark_initialized()
        assert negotiator.state is SessionState.UNVERSIONED


class TestCheckReady:
    def test_lenient_by_default(self, settings: ServerSettings) -> None:
        ProtocolNegotiator(settings).check_ready("tools/list")

    def test_strict_rejects_before_initialize(self) -> None:
        negotiator = ProtocolNegotiator(ServerSettings(require_initialize=True))
        with pytest.raises(ServerNotInitializedError) as excinfo:
            negotiator.check_ready("tools/call")
        assert excinfo.value.code == -32002

    def test_strict_allows_initialize_and_ping(self) -> None:
        negotiator = ProtocolNegotiator(ServerSettings(require_initialize=True))
        negotiator.check_ready("initialize")
        negotiator.check_ready("ping")

    def test_strict_allows_after_initialize(self) -> None:
        negotiator = ProtocolNegotiator(ServerSettings(require_initialize=True))
        negotiator.initialize({"protocolVersion": "2025-06-18"})
        negotiator.check_ready("tools/list")
