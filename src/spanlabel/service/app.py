"""FastAPI application for span labeling.

Endpoints:
- POST /label-spans - Label one prompt
- GET /health - Service health and active configuration

Environment variables:
- SPANLABEL_PRESET and SPANLABEL_* overrides (see ``spanlabel.config``)
- ANTHROPIC_API_KEY: Enables the oracle; without it only the fast path answers
- SPANLABEL_OPEN_VOCAB_ENABLED: Use the GLiNER tier when gliner is installed

Usage:
    uvicorn spanlabel.service.app:app --port 8000
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from spanlabel.config import from_env
from spanlabel.errors import (
    InvalidInput,
    LabelingCancelled,
    OracleCallError,
    OracleProtocolError,
    ValidationFailure,
)
from spanlabel.extraction import SymbolicExtractor
from spanlabel.labeling.orchestrator import SpanLabeler
from spanlabel.shared.llm import AnthropicOracle, DisabledOracle
from spanlabel.taxonomy import TAXONOMY_VERSION

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


class LabelSpansRequest(BaseModel):
    """Request body for /label-spans."""

    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(..., description="Prompt text to label")
    max_spans: Any = Field(default=None, alias="maxSpans")
    min_confidence: Any = Field(default=None, alias="minConfidence")
    policy: dict[str, Any] | None = None
    template_version: str | None = Field(default=None, alias="templateVersion")
    enable_repair: bool | None = Field(default=None, alias="enableRepair")
    timeout: float | None = Field(default=None, gt=0, description="Seconds before the call is abandoned")

    def options(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"text", "timeout"})


class SpanModel(BaseModel):
    text: str
    start: int
    end: int
    role: str
    confidence: float


class LabelSpansResponse(BaseModel):
    """Response body for /label-spans."""

    model_config = ConfigDict(populate_by_name=True)

    spans: list[SpanModel]
    meta: dict[str, Any]
    is_adversarial: bool = Field(alias="isAdversarial")
    elapsed_ms: float = Field(alias="elapsedMs")


class HealthResponse(BaseModel):
    status: str = Field(..., description="'ready' or 'degraded' (no oracle)")
    preset: str
    oracle: str
    fast_path: bool
    taxonomy_version: str


def _default_oracle():
    if os.environ.get("ANTHROPIC_API_KEY"):
        return AnthropicOracle()
    logger.warning("[Service] ANTHROPIC_API_KEY not set; oracle disabled, fast path only")
    return DisabledOracle()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the labeler and oracle unless they were injected beforehand."""
    if getattr(app.state, "labeler", None) is None:
        config = from_env()
        extractor = SymbolicExtractor(use_open_vocab=config.open_vocab_enabled)
        app.state.labeler = SpanLabeler(config, extractor=extractor)
        logger.info(f"[Service] Labeler ready with preset={config.name}")
    if getattr(app.state, "oracle", None) is None:
        app.state.oracle = _default_oracle()
    yield

    oracle = app.state.oracle
    if hasattr(oracle, "close"):
        oracle.close()
    logger.info("[Service] Shutdown complete")


app = FastAPI(
    title="Span Labeling Service",
    description="Hybrid fast-path / oracle span labeling for video prompts",
    version="0.1.0",
    lifespan=lifespan,
)


@app.post("/label-spans", response_model=LabelSpansResponse, response_model_by_alias=True)
def label_spans(request: LabelSpansRequest) -> LabelSpansResponse:
    """Label one prompt.

    Invalid input maps to 400, oracle and validation failures to 502 and a
    timeout to 504.
    """
    start_time = time.time()
    labeler: SpanLabeler = app.state.labeler

    try:
        result = labeler.label_spans(
            request.text, request.options(), app.state.oracle, timeout=request.timeout
        )
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LabelingCancelled as e:
        raise HTTPException(status_code=504, detail=str(e))
    except (ValidationFailure, OracleProtocolError, OracleCallError) as e:
        logger.error(f"[Service] Labeling failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    payload = result.to_dict()
    return LabelSpansResponse(
        spans=[SpanModel(**s) for s in payload["spans"]],
        meta=payload["meta"],
        isAdversarial=payload["isAdversarial"],
        elapsedMs=(time.time() - start_time) * 1000,
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    labeler: SpanLabeler = app.state.labeler
    oracle = app.state.oracle
    oracle_name = "disabled" if isinstance(oracle, DisabledOracle) else getattr(oracle, "name", type(oracle).__name__)
    return HealthResponse(
        status="degraded" if isinstance(oracle, DisabledOracle) else "ready",
        preset=labeler.config.name,
        oracle=oracle_name,
        fast_path=labeler.config.fast_path_enabled and labeler.assessor.extractor is not None,
        taxonomy_version=TAXONOMY_VERSION,
    )
