"""Oracle payload construction and response parsing.

Responses are parsed into a tagged result: either ``ParsedResponse`` or
``ParseError``. Optional fields the oracle may omit (``meta``,
``isAdversarial``, ``analysis_trace``) get defined defaults instead of being
treated as invalid.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from spanlabel.types import Policy

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```\s*$", re.DOTALL)


class OracleEnvelope(BaseModel):
    """Top-level shape of an oracle reply. Span entries are checked later."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    analysis_trace: str | None = Field(
        default=None, validation_alias=AliasChoices("analysis_trace", "analysisTrace")
    )
    spans: Any = Field(default_factory=list)
    meta: Any = None
    is_adversarial: bool = Field(
        default=False, validation_alias=AliasChoices("isAdversarial", "is_adversarial")
    )


@dataclass
class ParsedResponse:
    spans: Any
    meta: Any
    is_adversarial: bool = False
    analysis_trace: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class ParseError:
    message: str
    content: str = ""


ParseResult = Union[ParsedResponse, ParseError]


def clean_json_envelope(content: str) -> str:
    """Strip markdown code fences and surrounding prose from a JSON reply."""
    stripped = content.strip()
    fenced = _FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1).strip()
    if stripped.startswith("{"):
        return stripped
    first, last = stripped.find("{"), stripped.rfind("}")
    if first != -1 and last > first:
        return stripped[first:last + 1]
    return stripped


def parse_response(content: str | None, template_version: str) -> ParseResult:
    if not content or not content.strip():
        return ParseError("Oracle returned an empty response", content or "")

    cleaned = clean_json_envelope(content)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return ParseError(f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})", content)

    if not isinstance(data, dict):
        return ParseError(
            f"Expected a JSON object, got {type(data).__name__}", content
        )

    try:
        envelope = OracleEnvelope.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        return ParseError(f"Malformed response envelope: {problems}", content)

    return ParsedResponse(
        spans=envelope.spans,
        meta=_default_meta(envelope.meta, template_version),
        is_adversarial=envelope.is_adversarial,
        analysis_trace=envelope.analysis_trace,
        raw=data,
    )


def _default_meta(meta: Any, template_version: str) -> Any:
    if meta is None:
        return {"version": template_version, "notes": ""}
    if not isinstance(meta, dict):
        # Left for the validator to reject as a structural error.
        return meta
    filled = dict(meta)
    if filled.get("version") is None:
        filled["version"] = template_version
    if filled.get("notes") is None:
        filled["notes"] = ""
    return filled


def build_user_payload(
    task: str,
    policy: Policy,
    text: str,
    template_version: str,
    validation: dict[str, Any] | None = None,
) -> str:
    """Serialize the user message. The source text is fenced in XML tags."""
    payload: dict[str, Any] = {
        "task": task,
        "policy": {
            "allowOverlap": policy.allow_overlap,
            "nonTechnicalWordLimit": policy.non_technical_word_limit,
        },
        "text": f"<user_input>\n{text}\n</user_input>",
        "templateVersion": template_version,
    }
    if validation is not None:
        payload["validation"] = validation
    return json.dumps(payload, ensure_ascii=False)
