"""Single oracle round-trip with cancellation and error wrapping."""

from __future__ import annotations

import logging
import time

from spanlabel.errors import LabelingCancelled, OracleCallError
from spanlabel.labeling.scope import CallScope
from spanlabel.shared.llm.oracle import OracleClient, OracleRequest

logger = logging.getLogger(__name__)


def call_oracle(
    oracle: OracleClient,
    operation_name: str,
    system_prompt: str,
    user_message: str,
    max_tokens: int,
    scope: CallScope,
) -> str:
    """Execute one oracle call and return its raw content.

    Raises:
        LabelingCancelled: If the scope was cancelled before or during the call.
        OracleCallError: If the oracle raised or returned no content.
    """
    scope.check()
    request = OracleRequest(
        system_prompt=system_prompt,
        user_message=user_message,
        max_tokens=max_tokens,
        json_mode=True,
        timeout=scope.remaining(),
    )

    t0 = time.perf_counter()
    try:
        reply = oracle.execute(operation_name, request)
    except LabelingCancelled:
        raise
    except Exception as e:
        raise OracleCallError(f"Oracle call '{operation_name}' failed: {type(e).__name__}: {e}") from e
    elapsed = time.perf_counter() - t0

    if scope.is_cancelled():
        raise LabelingCancelled(f"Labeling cancelled during '{operation_name}'")

    content = getattr(reply, "content", None)
    if not isinstance(content, str) or not content.strip():
        raise OracleCallError(f"Oracle call '{operation_name}' returned no content")

    logger.debug("[Oracle] %s returned %d chars in %.2fs", operation_name, len(content), elapsed)
    return content
