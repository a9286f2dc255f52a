"""Command line entry point: review the current branch before asking a human."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import replace
from typing import Optional

import click

from diffscreen.analyzer import plan_units, review_diff
from diffscreen.config import Settings
from diffscreen.exceptions import DiffscreenError
from diffscreen.git import get_changes
from diffscreen.report import render_report

logger = logging.getLogger(__name__)

_LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def configure_logging(verbosity: int) -> None:
    """Send logs to stderr so stdout carries only the report."""
    logging.basicConfig(
        level=_LOG_LEVELS.get(verbosity, logging.DEBUG),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    # Keep boto noise at WARNING
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _fetch_diff(settings: Settings, verbose: int) -> str:
    if verbose:
        target = settings.base or "default branch"
        click.echo(f"Fetching changes against {target}...", err=True)
    try:
        return get_changes(settings.base, settings.context_lines)
    except DiffscreenError as e:
        raise click.ClickException(str(e)) from e


def _against_option(f):
    return click.option(
        "--against",
        default=None,
        help="Git revision to diff against instead of the merge base with main/master.",
    )(f)


@click.group(invoke_without_command=True)
@click.option("-v", "--verbose", count=True, help="Show progress (-vv for debug logs).")
@click.pass_context
def main(ctx: click.Context, verbose: int) -> None:
    """AI-powered screen of a branch's changes for superficial mistakes."""
    configure_logging(verbose)
    try:
        settings = Settings.from_env()
    except DiffscreenError as e:
        raise click.ClickException(str(e)) from e
    ctx.obj = {"settings": settings, "verbose": verbose}
    if ctx.invoked_subcommand is None:
        ctx.invoke(review)


@main.command()
@_against_option
@click.option("-p", "--prompt", default=None, help="Custom system prompt for the model.")
@click.option(
    "--max-unit-chars",
    type=click.IntRange(min=1),
    default=None,
    help="Character budget per model request.",
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Model requests in flight at once.",
)
@click.option("--model", "model_id", default=None, help="Bedrock model id.")
@click.option("--color/--no-color", default=None, help="Colour the report (default: when stdout is a terminal).")
@click.pass_context
def review(
    ctx: click.Context,
    against: Optional[str] = None,
    prompt: Optional[str] = None,
    max_unit_chars: Optional[int] = None,
    concurrency: Optional[int] = None,
    model_id: Optional[str] = None,
    color: Optional[bool] = None,
) -> None:
    """Review code changes."""
    verbose = ctx.obj["verbose"]
    overrides = {
        "base": against,
        "system_prompt": prompt,
        "max_unit_chars": max_unit_chars,
        "max_concurrency": concurrency,
        "model_id": model_id,
    }
    settings = replace(
        ctx.obj["settings"], **{k: v for k, v in overrides.items() if v is not None}
    )

    diff_text = _fetch_diff(settings, verbose)

    if verbose:
        click.echo("Sending changes to AI for review...", err=True)
    try:
        report = review_diff(diff_text, settings)
    except DiffscreenError as e:
        raise click.ClickException(str(e)) from e
    except KeyboardInterrupt:
        # Worker threads blocked in a Bedrock read would be joined at
        # interpreter exit; leave without waiting for them
        sys.stdout.flush()
        sys.stderr.flush()
        os._exit(130)

    for index in report.failed_units:
        click.echo(
            f"Warning: review unit {index} failed; its findings are missing from the report",
            err=True,
        )

    if color is None:
        color = sys.stdout.isatty()
    click.echo(render_report(report, color=color), nl=False)

    if verbose:
        click.echo(
            f"{report.unit_count} unit(s) reviewed, "
            f"{len(report.warnings)} reply entries dropped, "
            f"{report.dropped_count} finding(s) not matching the diff dropped, "
            f"{report.usage.total_tokens} tokens",
            err=True,
        )


@main.command("show-diff")
@_against_option
@click.pass_context
def show_diff(ctx: click.Context, against: Optional[str] = None) -> None:
    """Show the diff that would be reviewed."""
    settings = ctx.obj["settings"]
    if against:
        settings = replace(settings, base=against)
    click.echo(_fetch_diff(settings, ctx.obj["verbose"]), nl=False)


@main.command()
@_against_option
@click.option("--max-unit-chars", type=click.IntRange(min=1), default=None)
@click.pass_context
def units(
    ctx: click.Context, against: Optional[str] = None, max_unit_chars: Optional[int] = None
) -> None:
    """List the review units the diff splits into, without calling the model."""
    settings = ctx.obj["settings"]
    if against:
        settings = replace(settings, base=against)
    if max_unit_chars:
        settings = replace(settings, max_unit_chars=max_unit_chars)

    diff_text = _fetch_diff(settings, ctx.obj["verbose"])
    try:
        planned = plan_units(diff_text, settings)
    except DiffscreenError as e:
        raise click.ClickException(str(e)) from e

    if not planned:
        click.echo("No reviewable changes.")
        return
    for unit in planned:
        marker = " (oversized)" if unit.oversized(settings.max_unit_chars) else ""
        if not unit.reviewable:
            marker += " (removals only, not sent)"
        click.echo(
            f"{unit.index:>3}  {unit.file_path}  hunks={len(unit.hunks)} "
            f"chars={unit.char_size}{marker}"
        )


if __name__ == "__main__":
    main()
