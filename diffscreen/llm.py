"""Bedrock inference client for diff review."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig

from diffscreen.config import Settings
from diffscreen.exceptions import TransportFailure
from diffscreen.prompts import ReviewRequest

logger = logging.getLogger(__name__)

# Type alias for progress callbacks: (chars_so_far, elapsed_seconds, message) -> None
ProgressCallback = Callable[[int, float, str], None]

# Bedrock error event keys that may appear in place of a chunk
_STREAM_ERROR_KEYS = (
    "internalServerException",
    "modelStreamErrorException",
    "throttlingException",
    "validationException",
)

# Clients keyed by (profile, region), created once and reused
_clients: dict[tuple[Optional[str], str], object] = {}
_clients_lock = threading.Lock()


@dataclass(frozen=True)
class LLMResponse:
    """Text and accounting for one model call."""

    text: str
    stop_reason: str
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: int = 0

    @property
    def truncated(self) -> bool:
        return self.stop_reason in ("max_tokens", "stream_error")


def _log_usage(tool: str, model_id: str, response: LLMResponse) -> None:
    logger.info(
        "Bedrock usage [%s]: input=%d output=%d total=%d latency=%dms model=%s",
        tool,
        response.input_tokens,
        response.output_tokens,
        response.input_tokens + response.output_tokens,
        response.latency_ms,
        model_id,
    )


# ── Bedrock client ───────────────────────────────────────────────────────────


def _get_client(settings: Settings):
    """Lazy-init the Bedrock Runtime client.

    Credentials come from boto3's usual chain; a Bedrock API key in
    AWS_BEARER_TOKEN_BEDROCK is picked up by boto3 itself.
    """
    key = (settings.aws_profile, settings.aws_region)
    with _clients_lock:
        client = _clients.get(key)
        if client is None:
            session = boto3.Session(
                profile_name=settings.aws_profile,
                region_name=settings.aws_region,
            )
            client = session.client(
                "bedrock-runtime",
                config=BotoConfig(
                    retries={"max_attempts": 2, "mode": "adaptive"},
                    read_timeout=120,
                    connect_timeout=10,
                    max_pool_connections=max(settings.max_concurrency, 4),
                    tcp_keepalive=True,
                ),
            )
            _clients[key] = client
            logger.info(
                "Bedrock client initialized: profile=%s region=%s model=%s",
                settings.aws_profile,
                settings.aws_region,
                settings.model_id,
            )
    return client


def invoke(
    request: ReviewRequest,
    settings: Settings,
    on_progress: ProgressCallback | None = None,
) -> LLMResponse:
    """
    Send a streaming inference request to Bedrock and return the reply.

    Args:
        request: System prompt, user message and sampling parameters
        settings: Model id and AWS profile/region
        on_progress: Optional callback called during streaming with
                     (chars_so_far, elapsed_seconds, message)

    Returns:
        The accumulated reply. If the stream broke after some text arrived,
        the partial text is returned with stop_reason 'stream_error'.

    Raises:
        TransportFailure: If the Bedrock call fails before any text arrives
    """
    tool = request.tool
    body = {
        "anthropic_version": "bedrock-2023-05-31",
        "max_tokens": request.max_tokens,
        "temperature": request.temperature,
        "system": request.system_prompt,
        "messages": [
            {"role": "user", "content": request.user_message},
        ],
    }

    start = time.monotonic()
    logger.info("Bedrock stream starting [%s] model=%s", tool, settings.model_id)

    # Declare outside try so partial results are accessible in except
    text_chunks: list[str] = []
    input_tokens = 0
    output_tokens = 0

    try:
        client = _get_client(settings)
        response = client.invoke_model_with_response_stream(
            modelId=settings.model_id,
            contentType="application/json",
            accept="application/json",
            body=json.dumps(body),
        )

        stop_reason = "unknown"
        chunk_count = 0
        total_chars = 0

        for event in response["body"]:
            if "chunk" not in event:
                for key in _STREAM_ERROR_KEYS:
                    if key in event:
                        err_msg = event[key].get("message", str(event[key]))
                        logger.error(
                            "Bedrock stream error [%s]: %s: %s", tool, key, err_msg
                        )
                        raise TransportFailure(
                            f"Bedrock stream error ({key}): {err_msg}"
                        )
                logger.warning(
                    "Unknown non-chunk event in stream: %s", list(event.keys())
                )
                continue

            try:
                chunk = json.loads(event["chunk"]["bytes"])
            except (json.JSONDecodeError, KeyError) as parse_err:
                logger.warning("Malformed stream chunk, skipping: %s", parse_err)
                continue

            chunk_type = chunk.get("type", "")

            if chunk_type == "content_block_delta":
                delta = chunk.get("delta", {})
                if delta.get("type") == "text_delta":
                    text = delta.get("text", "")
                    text_chunks.append(text)
                    total_chars += len(text)
                    chunk_count += 1

                    if on_progress and chunk_count % 20 == 0:
                        elapsed = time.monotonic() - start
                        try:
                            on_progress(
                                total_chars,
                                elapsed,
                                f"[{tool}] streaming {total_chars} chars, {elapsed:.0f}s",
                            )
                        except Exception as cb_err:
                            logger.warning("on_progress callback raised: %s", cb_err)

            elif chunk_type == "message_delta":
                stop_reason = chunk.get("delta", {}).get("stop_reason", "unknown")
                output_tokens = chunk.get("usage", {}).get("output_tokens", 0)

            elif chunk_type == "message_start":
                input_tokens = (
                    chunk.get("message", {}).get("usage", {}).get("input_tokens", 0)
                )

        result = LLMResponse(
            text="".join(text_chunks),
            stop_reason=stop_reason,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=int((time.monotonic() - start) * 1000),
        )
        _log_usage(tool, settings.model_id, result)

        if stop_reason == "max_tokens":
            logger.warning(
                "Response truncated (hit max_tokens=%d) for tool=%s. "
                "Output may be incomplete.",
                request.max_tokens,
                tool,
            )
        if not result.text:
            logger.warning("Empty response from Bedrock stream for tool=%s", tool)
        return result

    except TransportFailure:
        raise
    except Exception as e:
        latency_ms = int((time.monotonic() - start) * 1000)
        partial = "".join(text_chunks)
        if partial:
            logger.error(
                "Bedrock stream failed after %dms with %d chars received: %s",
                latency_ms,
                len(partial),
                e,
            )
            result = LLMResponse(
                text=partial,
                stop_reason="stream_error",
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                latency_ms=latency_ms,
            )
            _log_usage(tool, settings.model_id, result)
            return result
        logger.error("Bedrock inference failed after %dms: %s", latency_ms, e)
        raise TransportFailure(f"Bedrock inference failed: {e}") from e
