from __future__ import annotations

import argparse
import json
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any

from spanlabel.config import PRESETS, from_env, get_config
from spanlabel.errors import SpanLabelingError
from spanlabel.evaluation import aggregate, evaluate_spans
from spanlabel.extraction import SymbolicExtractor
from spanlabel.labeling.chunker import category_breakdown
from spanlabel.labeling.orchestrator import SpanLabeler
from spanlabel.shared.llm import AnthropicOracle, DisabledOracle
from spanlabel.shared.logger import PipelineLogger


def _load_prompts(path: Path) -> list[dict[str, Any]]:
    """Read prompts from a JSON list or a plain text file (one per line)."""
    raw = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        items = json.loads(raw)
        prompts = []
        for i, item in enumerate(items):
            if isinstance(item, str):
                prompts.append({"id": str(i), "text": item})
            else:
                prompts.append({"id": str(item.get("id", i)), **item})
        return prompts
    return [
        {"id": str(i), "text": line}
        for i, line in enumerate(row.strip() for row in raw.splitlines())
        if line
    ]


def _load_predictions(path: Path) -> dict[str, list[dict]]:
    predictions: dict[str, list[dict]] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        if line.strip():
            record = json.loads(line)
            predictions[str(record["id"])] = record.get("spans", [])
    return predictions


def _build_oracle(name: str):
    if name == "none":
        return DisabledOracle()
    return AnthropicOracle()


def _build_labeler(args: argparse.Namespace) -> SpanLabeler:
    config = get_config(args.preset) if args.preset else from_env()
    extractor = None if args.no_fast_path else SymbolicExtractor(use_open_vocab=args.open_vocab)
    return SpanLabeler(config, extractor=extractor)


def _options(args: argparse.Namespace) -> dict[str, Any]:
    options: dict[str, Any] = {
        "maxSpans": args.max_spans,
        "minConfidence": args.min_confidence,
        "policy": {"allowOverlap": args.allow_overlap},
    }
    if args.repair:
        options["enableRepair"] = True
    return options


def _label_all(
    prompts: list[dict[str, Any]],
    labeler: SpanLabeler,
    oracle: Any,
    options: dict[str, Any],
    workers: int,
    log: PipelineLogger,
) -> tuple[dict[str, dict], list[str]]:
    """Label every prompt; returns records keyed by id plus failed ids."""
    records: dict[str, dict] = {}
    errors: list[str] = []
    lock = threading.Lock()
    done = 0

    def _process_one(prompt: dict[str, Any]) -> None:
        nonlocal done
        t0 = time.perf_counter()
        try:
            result = labeler.label_spans(prompt["text"], options, oracle)
        except SpanLabelingError as e:
            with lock:
                done += 1
                log.error(f"[{done}/{len(prompts)}] FAILED {prompt['id']}: {e}")
                log.count("prompts_failed")
                errors.append(prompt["id"])
            return
        elapsed = time.perf_counter() - t0

        with lock:
            done += 1
            records[prompt["id"]] = {"id": prompt["id"], **result.to_dict()}
            log.progress(done, len(prompts), prompt["id"])
            log.count("prompts_labeled")
            log.count("spans_total", len(result.spans))
            if result.meta.get("source") == "fast-path":
                log.count("fast_path_hits")
            if result.is_adversarial:
                log.count("adversarial_flagged")
            for category, n in category_breakdown(result.spans).items():
                log.count(f"category:{category}", n)
            if workers == 1:
                log.metric("spans", len(result.spans))
                log.metric("prompt_time_s", round(elapsed, 3), "s")
            for span in result.spans:
                log.trace(f"    [{span.start}:{span.end}] {span.role:28s} {span.text!r}")

    if workers == 1:
        for prompt in prompts:
            _process_one(prompt)
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(_process_one, p): p for p in prompts}
            for future in as_completed(futures):
                exc = future.exception()
                if exc is not None:
                    prompt = futures[future]
                    with lock:
                        log.error(f"UNEXPECTED {prompt['id']}: {type(exc).__name__}: {exc}")
                        errors.append(prompt["id"])

    return records, errors


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--log-file", type=Path, default=None,
                        help="INFO+ log file (readable summary)")
    parser.add_argument("--trace-file", type=Path, default=None,
                        help="TRACE+ log file (every span of every prompt)")
    parser.add_argument("--metrics-file", type=Path, default=None,
                        help="Write run counters and timers as JSON")
    parser.add_argument("--preset", choices=sorted(PRESETS), default=None,
                        help="Config preset (default: SPANLABEL_* environment)")
    parser.add_argument("--oracle", choices=["anthropic", "none"], default="anthropic",
                        help="'none' labels with the fast path only")
    parser.add_argument("--no-fast-path", action="store_true")
    parser.add_argument("--open-vocab", action="store_true",
                        help="Enable the GLiNER tier of the fast extractor")
    parser.add_argument("--max-spans", type=int, default=60)
    parser.add_argument("--min-confidence", type=float, default=0.5)
    parser.add_argument("--allow-overlap", action="store_true")
    parser.add_argument("--repair", action="store_true",
                        help="Send invalid oracle output back for one repair attempt")
    parser.add_argument("--workers", type=int, default=1,
                        help="Prompts labeled concurrently")


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spanlabel",
        description="Label video-prompt spans with the hybrid fast-path / oracle pipeline.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    label = sub.add_parser("label", help="Label a batch of prompts")
    label.add_argument("--input", required=True, type=Path,
                       help=".json list of prompts or text file with one prompt per line")
    label.add_argument("--output", required=True, type=Path, help="JSONL output file")
    _add_common(label)

    evaluate = sub.add_parser("evaluate", help="Score labels against gold spans")
    evaluate.add_argument("--gold", required=True, type=Path,
                          help="JSON list of {id, text, spans}")
    evaluate.add_argument("--predictions", type=Path, default=None,
                          help="JSONL from 'label'; if omitted the gold texts are labeled now")
    evaluate.add_argument("--iou-threshold", type=float, default=0.5)
    _add_common(evaluate)
    return parser


def _run_label(args: argparse.Namespace, log: PipelineLogger) -> int:
    if not args.input.is_file():
        log.error(f"Input file does not exist: {args.input}")
        return 1

    prompts = _load_prompts(args.input)
    if not prompts:
        log.warn(f"No prompts found in {args.input}")
        return 0
    log.metric("prompts_found", len(prompts))

    labeler = _build_labeler(args)
    oracle = _build_oracle(args.oracle)
    log.info(f"Preset:               {labeler.config.name}")
    log.info(f"Oracle:               {args.oracle}")

    log.section(f"Labeling {len(prompts)} prompts")
    with log.timer("labeling"):
        records, errors = _label_all(
            prompts, labeler, oracle, _options(args), max(1, args.workers), log
        )

    args.output.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output, "w", encoding="utf-8") as f:
        for prompt in prompts:
            record = records.get(prompt["id"])
            if record is not None:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
    log.info(f"Wrote {len(records)} records to {args.output}")
    return 1 if errors else 0


def _run_evaluate(args: argparse.Namespace, log: PipelineLogger) -> int:
    if not args.gold.is_file():
        log.error(f"Gold file does not exist: {args.gold}")
        return 1

    gold = _load_prompts(args.gold)
    errors: list[str] = []
    if args.predictions:
        predictions = _load_predictions(args.predictions)
    else:
        labeler = _build_labeler(args)
        with log.timer("labeling"):
            records, errors = _label_all(
                gold, labeler, _build_oracle(args.oracle), _options(args),
                max(1, args.workers), log,
            )
        predictions = {pid: rec["spans"] for pid, rec in records.items()}

    log.section(f"Scoring {len(gold)} prompts")
    scores = []
    for item in gold:
        predicted = predictions.get(item["id"], [])
        score = evaluate_spans(predicted, item.get("spans", []), threshold=args.iou_threshold)
        scores.append(score)
        log.trace(f"  {item['id']}: f1={score.f1:.3f} tp={score.true_positives} "
                  f"fp={score.false_positives} fn={score.false_negatives}")

    totals = aggregate(scores)
    for name, value in totals.items():
        log.metric(name, round(value, 4))
    if scores:
        log.metric("taxonomy_accuracy", round(sum(s.taxonomy_accuracy for s in scores) / len(scores), 4))
        log.metric("fragmentation_rate", round(sum(s.fragmentation_rate for s in scores) / len(scores), 4))
        log.metric("over_extraction_rate", round(sum(s.over_extraction_rate for s in scores) / len(scores), 4))
    return 1 if errors else 0


def main(argv: list[str] | None = None) -> int:
    args = _make_parser().parse_args(argv)

    log = PipelineLogger(
        log_file=args.log_file,
        trace_file=args.trace_file,
        console=True,
        min_level="INFO",
    )
    log.install_stdlib_bridge(root_logger="spanlabel", level=10)

    log.section(f"Span Labeling: {args.command}")
    try:
        if args.command == "label":
            status = _run_label(args, log)
        else:
            status = _run_evaluate(args, log)
    except ValueError as e:
        # Bad preset, bad SPANLABEL_* value or missing API key.
        log.error(str(e))
        status = 1

    log.summary()
    if args.metrics_file:
        log.write_metrics(args.metrics_file)
    log.remove_stdlib_bridge(root_logger="spanlabel")
    log.close()
    return status


if __name__ == "__main__":
    sys.exit(main())
