"""MCP tool definitions for the diff screener."""

from __future__ import annotations

import asyncio
import json
import logging
import traceback

from fastmcp import Context, FastMCP

from diffscreen.analyzer import plan_units, review_diff as _review_diff
from diffscreen.config import Settings

logger = logging.getLogger(__name__)


def _error_response(tool_name: str, error: Exception) -> str:
    """Build a structured JSON error response for MCP tool failures."""
    logger.error("Tool %s failed: %s\n%s", tool_name, error, traceback.format_exc())
    return json.dumps(
        {
            "stats": {"issues": 0, "suggestions": 0, "total": 0},
            "files": [],
            "error": f"Tool '{tool_name}' failed: {error}",
        },
        indent=2,
    )


def _make_progress_bridge(ctx: Context, loop: asyncio.AbstractEventLoop):
    """Create a sync callback that sends MCP log notifications during streaming.

    Uses ctx.log (not ctx.report_progress) because log notifications do not
    require the client to have sent a progressToken.
    """
    call_count = 0

    def on_progress(chars_so_far: int, elapsed: float, message: str) -> None:
        nonlocal call_count
        call_count += 1
        try:
            future = asyncio.run_coroutine_threadsafe(
                ctx.log(
                    message=f"[review] {message}",
                    level="info",
                    logger_name="diffscreen.llm",
                ),
                loop,
            )
            future.result(timeout=2.0)
        except Exception as e:
            logger.warning("Log notification failed (call #%d): %s", call_count, e)

    return on_progress


def register_tools(mcp: FastMCP, settings: Settings) -> None:
    """Register the review tools on the given FastMCP server instance."""

    @mcp.tool()
    async def review_diff(diff: str, ctx: Context) -> str:
        """Screen a git diff for superficial mistakes.

        Findings are anchored to added or context lines of the diff and
        grouped by file, ordered by line number.

        Args:
            diff: The unified diff output (e.g., from `git diff main...HEAD`)
        """
        try:
            loop = asyncio.get_running_loop()
            on_progress = _make_progress_bridge(ctx, loop)

            report = await asyncio.to_thread(
                _review_diff,
                diff_text=diff,
                settings=settings,
                on_progress=on_progress,
            )
            return report.to_json()
        except Exception as e:
            return _error_response("review_diff", e)

    @mcp.tool()
    async def show_units(diff: str) -> str:
        """Show how a diff would be split into review units, without calling the model.

        Args:
            diff: The unified diff output
        """
        try:
            units = plan_units(diff, settings)
            return json.dumps(
                {
                    "max_unit_chars": settings.max_unit_chars,
                    "units": [
                        dict(u.describe(), oversized=u.oversized(settings.max_unit_chars))
                        for u in units
                    ],
                },
                indent=2,
            )
        except Exception as e:
            return _error_response("show_units", e)
