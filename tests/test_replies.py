"""Tests for the AI reply generator against a mocked HTTP transport."""

import json

import httpx
import pytest

from feedhub.errors import UpstreamUnavailable, ValidationError
from feedhub.replies import ReplyGenerator


async def test_generate_posts_chat_completion():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "A formal reply."}}]})

    gen = ReplyGenerator("sk-test", base_url="https://api.test/v1", transport=httpx.MockTransport(handler))
    try:
        assert await gen.generate("nice post") == "A formal reply."
    finally:
        await gen.aclose()

    assert seen["path"] == "/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gpt-4o-mini"
    assert seen["body"]["max_tokens"] == 150
    assert '"nice post"' in seen["body"]["messages"][1]["content"]


async def test_upstream_error_is_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "boom"})

    gen = ReplyGenerator("sk-test", transport=httpx.MockTransport(handler))
    with pytest.raises(UpstreamUnavailable):
        await gen.generate("nice post")
    await gen.aclose()


async def test_missing_key_or_prompt():
    gen = ReplyGenerator(None)
    with pytest.raises(ValidationError):
        await gen.generate("")
    with pytest.raises(UpstreamUnavailable):
        await gen.generate("nice post")
    await gen.aclose()
