"""OracleClient Protocol for the external labeling service.

The pipeline treats the oracle as a black box that takes a system prompt and
a user message and returns a JSON string. Implementations must be safe to
share across threads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class OracleRequest:
    system_prompt: str
    user_message: str
    max_tokens: int = 4000
    json_mode: bool = True
    # Seconds left before the caller's deadline, if any.
    timeout: float | None = None


@dataclass(frozen=True)
class OracleReply:
    content: str


@runtime_checkable
class OracleClient(Protocol):
    """Protocol for labeling oracle backends."""

    def execute(self, operation_name: str, request: OracleRequest) -> OracleReply:
        """Run one oracle call.

        Args:
            operation_name: Logical operation, e.g. "label_spans" or
                "repair_spans". Used for logging and routing.
            request: Prompt payload.

        Returns:
            The raw reply text.

        Raises:
            Exception: Transport failures propagate to the caller.
        """
        ...


class DisabledOracle:
    """Oracle that refuses every call, for fast-path-only runs."""

    def execute(self, operation_name: str, request: OracleRequest) -> OracleReply:
        raise RuntimeError(f"Oracle disabled; '{operation_name}' needs the oracle path")
