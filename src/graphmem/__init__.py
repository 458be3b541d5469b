"""graphmem: knowledge-graph memory served over MCP (JSON-RPC 2.0 on stdio)."""

from __future__ import annotations

__version__ = "0.1.0"
