"""Tests for the Bedrock streaming client, with the boto3 client faked out."""

import json

import pytest

from diffscreen import llm
from diffscreen.config import Settings
from diffscreen.exceptions import TransportFailure
from diffscreen.prompts import ReviewRequest

REQUEST = ReviewRequest(system_prompt="sys", user_message="msg", max_tokens=100, temperature=0.0, tool="t")


def _chunk(payload: dict) -> dict:
    return {"chunk": {"bytes": json.dumps(payload).encode()}}


def _text(text: str) -> dict:
    return _chunk({"type": "content_block_delta", "delta": {"type": "text_delta", "text": text}})


class FakeClient:
    def __init__(self, events=None, error=None):
        self.events = events or []
        self.error = error
        self.kwargs = None

    def invoke_model_with_response_stream(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return {"body": self.events}


@pytest.fixture
def fake_client(monkeypatch):
    def install(client):
        monkeypatch.setattr(llm, "_get_client", lambda settings: client)
        return client

    return install


def test_accumulates_stream(fake_client):
    client = fake_client(
        FakeClient(
            [
                _chunk({"type": "message_start", "message": {"usage": {"input_tokens": 42}}}),
                _text('{"findings": '),
                _text("[]}"),
                _chunk({"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 7}}),
            ]
        )
    )

    response = llm.invoke(REQUEST, Settings(model_id="m-1"))

    assert response.text == '{"findings": []}'
    assert response.stop_reason == "end_turn"
    assert (response.input_tokens, response.output_tokens) == (42, 7)
    assert not response.truncated
    body = json.loads(client.kwargs["body"])
    assert client.kwargs["modelId"] == "m-1"
    assert body["system"] == "sys"
    assert body["messages"] == [{"role": "user", "content": "msg"}]
    assert body["max_tokens"] == 100


def test_malformed_chunk_is_skipped(fake_client):
    fake_client(FakeClient([{"chunk": {"bytes": b"{not json"}}, _text("ok")]))
    assert llm.invoke(REQUEST, Settings()).text == "ok"


def test_call_failure_is_transport_failure(fake_client):
    fake_client(FakeClient(error=ConnectionError("no route")))
    with pytest.raises(TransportFailure, match="no route"):
        llm.invoke(REQUEST, Settings())


def test_stream_error_event_is_transport_failure(fake_client):
    fake_client(FakeClient([{"throttlingException": {"message": "slow down"}}]))
    with pytest.raises(TransportFailure, match="slow down"):
        llm.invoke(REQUEST, Settings())


def test_partial_text_survives_broken_stream(fake_client):
    def events():
        yield _text('{"findings": [')
        raise ConnectionError("reset")

    fake_client(FakeClient(events()))

    response = llm.invoke(REQUEST, Settings())

    assert response.text == '{"findings": ['
    assert response.stop_reason == "stream_error"
    assert response.truncated


def test_progress_callback(fake_client):
    fake_client(FakeClient([_text("x")] * 40))
    seen = []

    llm.invoke(REQUEST, Settings(), on_progress=lambda chars, elapsed, msg: seen.append(chars))

    assert seen == [20, 40]
