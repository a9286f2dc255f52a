"""Core review pipeline: diff to units, units to model calls, replies to report."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from functools import partial
from typing import Optional

from diffscreen import llm
from diffscreen.anchoring import AnchorResult, anchor_findings
from diffscreen.chunking import ReviewUnit, chunk_files
from diffscreen.config import Settings
from diffscreen.cost import Usage, estimate_cost
from diffscreen.diff_parser import diff_stats, parse_diff
from diffscreen.exceptions import ResponseParseWarning, TransportFailure
from diffscreen.git import get_changes
from diffscreen.llm import LLMResponse, ProgressCallback
from diffscreen.llm_parsing import ParsedResponse, parse_review_response
from diffscreen.models import ReviewReport
from diffscreen.prompts import ReviewRequest, build_review_request
from diffscreen.report import group_findings

logger = logging.getLogger(__name__)

# (request, settings) -> response; llm.invoke in production, a fake in tests
Invoker = Callable[[ReviewRequest, Settings], LLMResponse]


@dataclass
class UnitOutcome:
    """Result of reviewing one unit."""

    unit: ReviewUnit
    response: LLMResponse
    parsed: ParsedResponse
    anchored: AnchorResult


def plan_units(diff_text: str, settings: Settings) -> list[ReviewUnit]:
    """Parse and chunk a diff without calling the model."""
    return chunk_files(parse_diff(diff_text), settings.max_unit_chars)


def review_unit(unit: ReviewUnit, settings: Settings, invoke: Invoker) -> UnitOutcome:
    """One request/response exchange for a unit, then both validation gates.

    Raises:
        TransportFailure: If the model call fails
    """
    request = build_review_request(unit, settings)
    logger.info(
        "LLM unit %d: file=%s hunks=%d (~%d chars)",
        unit.index,
        unit.file_path,
        len(unit.hunks),
        unit.char_size,
    )
    response = invoke(request, settings)
    parsed = parse_review_response(response.text, unit.index)
    if response.truncated:
        parsed.warnings.append(
            ResponseParseWarning(
                unit.index,
                f"reply ended with stop_reason={response.stop_reason}; "
                "findings may be incomplete",
            )
        )
    anchored = anchor_findings(parsed.findings, [unit.file])
    if anchored.mismatches:
        logger.info(
            "Unit %d: %d of %d findings did not match a diff line",
            unit.index,
            len(anchored.mismatches),
            len(parsed.findings),
        )
    return UnitOutcome(unit, response, parsed, anchored)


def _run_units(
    units: list[ReviewUnit], settings: Settings, invoke: Invoker
) -> tuple[list[Optional[UnitOutcome]], dict[int, TransportFailure]]:
    """Review all units with bounded fan-out; results are indexed by unit.

    Units without an added or context line are not sent; their slot stays
    None.
    """
    outcomes: list[Optional[UnitOutcome]] = [None] * len(units)
    failures: dict[int, TransportFailure] = {}

    pending = []
    for unit in units:
        if unit.reviewable:
            pending.append(unit)
        else:
            logger.info(
                "Unit %d (%s) only removes lines; skipping model call",
                unit.index,
                unit.file_path,
            )
    if not pending:
        return outcomes, failures

    pool = ThreadPoolExecutor(
        max_workers=max(1, min(settings.max_concurrency, len(pending))),
        thread_name_prefix="diffscreen-unit",
    )
    try:
        futures = {pool.submit(review_unit, u, settings, invoke): u for u in pending}
        for future in as_completed(futures):
            unit = futures[future]
            try:
                outcomes[unit.index] = future.result()
            except TransportFailure as e:
                e.unit_index = unit.index
                failures[unit.index] = e
                logger.error(
                    "LLM call failed for unit %d (%s): %s", unit.index, unit.file_path, e
                )
    except BaseException:
        # Interrupted: abandon in-flight calls, report nothing
        pool.shutdown(wait=False, cancel_futures=True)
        raise
    pool.shutdown()
    return outcomes, failures


def review_diff(
    diff_text: str,
    settings: Settings,
    invoke: Invoker | None = None,
    on_progress: ProgressCallback | None = None,
) -> ReviewReport:
    """
    Review a unified diff: one model call per unit, then validate the replies.

    Args:
        diff_text: Unified diff output (e.g., from `git diff`)
        settings: Run configuration
        invoke: Model call; defaults to the Bedrock client
        on_progress: Optional callback for streaming progress updates

    Raises:
        MalformedDiff: If the diff cannot be parsed
        TransportFailure: If every model call failed
    """
    files = parse_diff(diff_text)
    stats = diff_stats(files)
    units = chunk_files(files, settings.max_unit_chars)

    if not units:
        logger.info("No reviewable hunks in diff (%d file(s))", len(files))
        return ReviewReport(diff_stats=stats)

    if invoke is None:
        invoke = partial(llm.invoke, on_progress=on_progress)

    logger.info(
        "Diff split into %d review unit(s) across %d file(s)", len(units), len(files)
    )
    outcomes, failures = _run_units(units, settings, invoke)

    sent = sum(1 for u in units if u.reviewable)
    if failures and len(failures) == sent:
        first = failures[min(failures)]
        raise TransportFailure(
            f"All {sent} review unit(s) failed; first error: {first}"
        )

    usage = Usage()
    warnings: list[ResponseParseWarning] = []
    arrived = []
    dropped = 0
    for outcome in outcomes:
        if outcome is None:
            continue
        usage.add(
            outcome.response.input_tokens,
            outcome.response.output_tokens,
            outcome.response.latency_ms,
        )
        warnings.extend(outcome.parsed.warnings)
        arrived.extend(outcome.anchored.findings)
        dropped += len(outcome.anchored.mismatches)

    return ReviewReport(
        files=group_findings(arrived),
        unit_count=len(units),
        failed_units=sorted(failures),
        warnings=warnings,
        dropped_count=dropped,
        usage=usage,
        cost=estimate_cost(settings.model_id, usage),
        diff_stats=stats,
    )


def review_changes(
    settings: Settings,
    invoke: Invoker | None = None,
    on_progress: ProgressCallback | None = None,
) -> ReviewReport:
    """Review HEAD against the configured base revision."""
    diff_text = get_changes(settings.base, settings.context_lines)
    return review_diff(diff_text, settings, invoke=invoke, on_progress=on_progress)
