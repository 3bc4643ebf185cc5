"""Single-shot repair round-trip for oracle output that failed validation."""

from __future__ import annotations

import logging
from typing import Any

from spanlabel.config import SpanLabelingConfig
from spanlabel.errors import OracleProtocolError, ValidationFailure
from spanlabel.labeling.cache import PositionCache
from spanlabel.labeling.oracle_call import call_oracle
from spanlabel.labeling.policy import build_task_description
from spanlabel.labeling.prompts import REPAIR_INSTRUCTIONS, build_system_prompt
from spanlabel.labeling.response import ParseError, build_user_payload, parse_response
from spanlabel.labeling.scope import CallScope
from spanlabel.labeling.text_utils import format_validation_errors
from spanlabel.labeling.validator import LENIENT, adversarial_result, validate_spans
from spanlabel.shared.llm.oracle import OracleClient
from spanlabel.types import Policy, ProcessingOptions, ValidationResult

logger = logging.getLogger(__name__)

REPAIR_OPERATION = "repair_spans"


class RepairCoordinator:
    """Asks the oracle to fix its own output exactly once.

    There is no retry loop: if the corrected response still fails lenient
    validation, the call fails with ``ValidationFailure``.
    """

    def __init__(self, config: SpanLabelingConfig) -> None:
        self.config = config

    def build_payload(
        self,
        original_response: str,
        validation_errors: list[str],
        text: str,
        policy: Policy,
        options: ProcessingOptions,
    ) -> str:
        validation: dict[str, Any] = {
            "errors": format_validation_errors(validation_errors),
            "originalResponse": original_response,
            "instructions": REPAIR_INSTRUCTIONS,
        }
        return build_user_payload(
            build_task_description(options.max_spans, policy),
            policy,
            text,
            options.template_version,
            validation=validation,
        )

    def repair(
        self,
        original_response: str,
        validation_errors: list[str],
        oracle: OracleClient,
        *,
        text: str,
        policy: Policy,
        options: ProcessingOptions,
        scope: CallScope,
        cache: PositionCache | None = None,
    ) -> ValidationResult:
        """Run the repair call and validate the result leniently.

        Raises:
            OracleProtocolError: The repaired response is not valid JSON.
            ValidationFailure: The repaired response still fails validation.
            OracleCallError: The oracle call itself failed.
            LabelingCancelled: The call scope was cancelled.
        """
        logger.info("[Repair] requesting repair for %d validation error(s)", len(validation_errors))
        content = call_oracle(
            oracle,
            REPAIR_OPERATION,
            build_system_prompt(repair=True),
            self.build_payload(original_response, validation_errors, text, policy, options),
            self.config.oracle_max_tokens,
            scope,
        )

        parsed = parse_response(content, options.template_version)
        if isinstance(parsed, ParseError):
            raise OracleProtocolError(
                f"Repair response could not be parsed: {parsed.message}", content
            )

        if parsed.is_adversarial:
            logger.warning("[Repair] oracle flagged input as adversarial during repair")
            return adversarial_result(parsed.meta, options, parsed.analysis_trace)

        result = validate_spans(
            parsed.spans,
            parsed.meta,
            text,
            policy,
            options,
            LENIENT,
            cache if cache is not None else scope.new_cache(text),
            analysis_trace=parsed.analysis_trace,
        )
        if not result.ok:
            raise ValidationFailure(
                "Repair attempt failed validation:\n" + format_validation_errors(result.errors),
                result.errors,
            )
        return result
