"""Labeling oracle abstraction."""
from .oracle import DisabledOracle, OracleClient, OracleReply, OracleRequest
from .anthropic_provider import AnthropicOracle

__all__ = ["DisabledOracle", "OracleClient", "OracleReply", "OracleRequest", "AnthropicOracle"]
