"""Top-level span labeling entry point.

Routing:
1. Word count above ``max_words_per_chunk`` -> chunked path. Each chunk
   re-enters the single-pass path; failed chunks become empty results.
2. Otherwise single pass: fast path first, then the oracle, then strict
   validation, then lenient validation or one repair round-trip.

Usage:
    labeler = SpanLabeler(config, extractor=SymbolicExtractor())
    result = labeler.label_spans(text, {"maxSpans": 20}, oracle)
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any

from spanlabel.config import SpanLabelingConfig
from spanlabel.errors import ChunkFailure, InvalidInput, OracleProtocolError, ValidationFailure
from spanlabel.labeling import processing
from spanlabel.labeling.assessor import FastPathAssessor
from spanlabel.labeling.chunker import TextChunker, merge_chunked_spans
from spanlabel.labeling.oracle_call import call_oracle
from spanlabel.labeling.policy import LabelRequest, build_task_description, resolve_request
from spanlabel.labeling.prompts import build_system_prompt
from spanlabel.labeling.repair import RepairCoordinator
from spanlabel.labeling.response import ParseError, build_user_payload, parse_response
from spanlabel.labeling.scope import CallScope
from spanlabel.labeling.text_utils import format_validation_errors, whitespace_word_count
from spanlabel.labeling.validator import LENIENT, STRICT, adversarial_result, validate_spans
from spanlabel.shared.llm.oracle import OracleClient
from spanlabel.types import Chunk, ChunkResult, ValidationResult

logger = logging.getLogger(__name__)

LABEL_OPERATION = "label_spans"


class SpanLabeler:
    """Hybrid fast-path / oracle span labeler.

    Stateless between calls: every call builds its own ``CallScope`` and all
    configuration is fixed at construction.
    """

    def __init__(
        self,
        config: SpanLabelingConfig | None = None,
        extractor: Any = None,
    ) -> None:
        self.config = config or SpanLabelingConfig()
        self.assessor = FastPathAssessor(self.config, extractor)
        self.repairer = RepairCoordinator(self.config)
        self.chunker = TextChunker(
            max_words=self.config.max_words_per_chunk,
            overlap_words=self.config.chunk_overlap_words,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def label_spans(
        self,
        text: str,
        options: Any = None,
        oracle: OracleClient | None = None,
        *,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> ValidationResult:
        """Label ``text`` and return a validated result.

        Args:
            text: Source text. Must contain non-whitespace characters.
            options: Mapping with optional ``maxSpans``, ``minConfidence``,
                ``policy``, ``templateVersion`` and ``enableRepair``.
            oracle: Labeling oracle, required even if the fast path may
                answer on its own.
            cancel_event: Set it from another thread to abort the call.
            timeout: Seconds before the call is treated as cancelled.

        Raises:
            InvalidInput: Empty text or missing oracle.
            OracleProtocolError: Unparseable oracle output with repair disabled.
            ValidationFailure: Output still invalid after lenient validation
                or after the repair attempt.
            OracleCallError: The oracle could not be reached.
            LabelingCancelled: Single-pass call cancelled or timed out.
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidInput("text is required and must not be blank")
        if oracle is None:
            raise InvalidInput("an oracle client is required")

        request = resolve_request(options)
        words = whitespace_word_count(text)

        with CallScope(cancel_event=cancel_event, timeout=timeout) as scope:
            if self.chunker.needs_chunking(text):
                logger.info(
                    "[Labeler] %d words exceeds %d, using chunked processing",
                    words,
                    self.config.max_words_per_chunk,
                )
                return self._label_chunked(text, request, oracle, scope, words)
            return self._label_single(text, request, oracle, scope)

    # ------------------------------------------------------------------
    # Single pass
    # ------------------------------------------------------------------

    def _repair_enabled(self, request: LabelRequest) -> bool:
        if request.enable_repair is None:
            return self.config.enable_repair
        return request.enable_repair

    def _label_single(
        self,
        text: str,
        request: LabelRequest,
        oracle: OracleClient,
        scope: CallScope,
    ) -> ValidationResult:
        options, policy = request.options, request.policy
        cache = scope.new_cache(text)

        fast = self.assessor.extract(text, policy, options, scope, cache)
        if fast is not None:
            logger.debug("[Labeler] fast path accepted %d spans", len(fast.spans))
            return fast

        scope.check()
        content = call_oracle(
            oracle,
            LABEL_OPERATION,
            build_system_prompt(),
            build_user_payload(
                build_task_description(options.max_spans, policy),
                policy,
                text,
                options.template_version,
            ),
            self.config.oracle_max_tokens,
            scope,
        )
        repair = self._repair_enabled(request)

        parsed = parse_response(content, options.template_version)
        if isinstance(parsed, ParseError):
            if repair:
                logger.warning("[Labeler] unparseable oracle response, attempting repair: %s", parsed.message)
                return self._finish(self.repairer.repair(
                    content, [parsed.message], oracle,
                    text=text, policy=policy, options=options, scope=scope, cache=cache,
                ))
            raise OracleProtocolError(f"Oracle response could not be parsed: {parsed.message}", content)

        if parsed.is_adversarial:
            logger.warning("[Labeler] oracle flagged input as adversarial")
            return adversarial_result(parsed.meta, options, parsed.analysis_trace)

        strict = validate_spans(
            parsed.spans, parsed.meta, text, policy, options, STRICT, cache,
            analysis_trace=parsed.analysis_trace,
        )
        if strict.ok:
            return self._finish(strict)

        logger.info("[Labeler] strict validation failed with %d error(s)", len(strict.errors))
        if repair:
            return self._finish(self.repairer.repair(
                content, strict.errors, oracle,
                text=text, policy=policy, options=options, scope=scope, cache=cache,
            ))

        lenient = validate_spans(
            parsed.spans, parsed.meta, text, policy, options, LENIENT, cache,
            analysis_trace=parsed.analysis_trace,
        )
        if not lenient.ok:
            raise ValidationFailure(
                "Span validation failed:\n" + format_validation_errors(lenient.errors),
                lenient.errors,
            )
        return self._finish(lenient)

    @staticmethod
    def _finish(result: ValidationResult) -> ValidationResult:
        if not result.meta.get("notes"):
            result.meta["notes"] = f"Labeled {len(result.spans)} spans"
        return result

    # ------------------------------------------------------------------
    # Chunked
    # ------------------------------------------------------------------

    def _run_chunk(
        self,
        chunk: Chunk,
        request: LabelRequest,
        oracle: OracleClient,
        scope: CallScope,
    ) -> ChunkResult:
        result = self._label_single(chunk.text, request, oracle, scope)
        return ChunkResult(
            chunk=chunk,
            spans=result.spans,
            is_adversarial=result.is_adversarial,
            meta=result.meta,
        )

    @staticmethod
    def _failed_chunk(chunk: Chunk, exc: BaseException) -> ChunkResult:
        failure = ChunkFailure(chunk.index, exc)
        logger.warning("[Chunked] %s; continuing with an empty result", failure)
        return ChunkResult(chunk=chunk, error=str(failure))

    def _process_chunks(
        self,
        chunks: list[Chunk],
        request: LabelRequest,
        oracle: OracleClient,
        scope: CallScope,
    ) -> list[ChunkResult]:
        """Process chunks in batches; results are indexed by chunk position."""
        results: list[ChunkResult | None] = [None] * len(chunks)
        parallel = self.config.process_chunks_in_parallel and len(chunks) > 1
        batch_size = max(1, self.config.max_concurrent_chunks)

        if not parallel:
            for chunk in chunks:
                try:
                    results[chunk.index] = self._run_chunk(chunk, request, oracle, scope)
                except Exception as e:
                    results[chunk.index] = self._failed_chunk(chunk, e)
        else:
            with ThreadPoolExecutor(max_workers=batch_size, thread_name_prefix="spanlabel-chunk") as pool:
                for batch_start in range(0, len(chunks), batch_size):
                    batch = chunks[batch_start:batch_start + batch_size]
                    futures: list[tuple[Chunk, Future[ChunkResult]]] = [
                        (chunk, pool.submit(self._run_chunk, chunk, request, oracle, scope))
                        for chunk in batch
                    ]
                    for chunk, future in futures:
                        try:
                            results[chunk.index] = future.result(timeout=scope.remaining())
                        except FuturesTimeout as e:
                            future.cancel()
                            scope.cancel()
                            results[chunk.index] = self._failed_chunk(chunk, e)
                        except Exception as e:
                            results[chunk.index] = self._failed_chunk(chunk, e)

        return [
            r if r is not None else ChunkResult(chunk=c, error="not processed")
            for c, r in zip(chunks, results)
        ]

    def _label_chunked(
        self,
        text: str,
        request: LabelRequest,
        oracle: OracleClient,
        scope: CallScope,
        total_words: int,
    ) -> ValidationResult:
        options, policy = request.options, request.policy
        chunks = self.chunker.chunk_text(text)
        logger.info("[Chunked] %d chunks (max %d words each)", len(chunks), self.chunker.max_words)

        results = self._process_chunks(chunks, request, oracle, scope)
        failed = [r.chunk.index for r in results if r.error]
        is_adversarial = any(r.is_adversarial for r in results)

        if is_adversarial:
            spans = []
        else:
            spans = merge_chunked_spans(
                results,
                allow_overlap=policy.allow_overlap,
                position_tolerance=self.config.merge_position_tolerance,
            )
            spans, _ = processing.truncate(spans, options.max_spans)

        notes = f"Processed {len(chunks)} chunks, {len(spans)} total spans"
        if failed:
            notes += f" | {len(failed)} chunk(s) failed: {failed}"
        if is_adversarial:
            notes += " | adversarial input flagged"

        meta: dict[str, Any] = {
            "version": options.template_version,
            "notes": notes,
            "chunked": True,
            "chunkCount": len(chunks),
            "totalWords": total_words,
        }
        if failed:
            meta["failedChunks"] = failed

        return ValidationResult(ok=True, spans=spans, meta=meta, is_adversarial=is_adversarial)


def label_spans(
    text: str,
    options: Any = None,
    oracle: OracleClient | None = None,
    *,
    config: SpanLabelingConfig | None = None,
    extractor: Any = None,
    cancel_event: threading.Event | None = None,
    timeout: float | None = None,
) -> ValidationResult:
    """One-shot convenience wrapper around ``SpanLabeler.label_spans``."""
    labeler = SpanLabeler(config=config, extractor=extractor)
    return labeler.label_spans(
        text, options, oracle, cancel_event=cancel_event, timeout=timeout
    )
