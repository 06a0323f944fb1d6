"""Tests for Messages API call and reply parsing helpers."""
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from anthropic._exceptions import OverloadedError
from tenacity import wait_none

from marketing_ops.services.llm_helpers import (
    OVERLOAD_ATTEMPTS,
    create_message_text,
    extract_json_text,
    parse_json_object,
)

pytestmark = pytest.mark.unit


class TestExtractJsonText:
    def test_unfenced_reply_is_stripped(self):
        assert extract_json_text('  {"confidence": 80}\n') == '{"confidence": 80}'

    def test_json_fence(self):
        assert extract_json_text('```json\n{"confidence": 80}\n```') == '{"confidence": 80}'

    def test_fence_with_surrounding_prose(self):
        reply = 'Here is my analysis:\n```\n{"confidence": 80}\n```\nHope this helps.'
        assert extract_json_text(reply) == '{"confidence": 80}'


class TestParseJsonObject:
    def test_fenced_object(self):
        assert parse_json_object('```json\n{"performance_impact": "negative"}\n```') == {
            "performance_impact": "negative"
        }

    def test_prose_raises_decode_error(self):
        with pytest.raises(json.JSONDecodeError):
            parse_json_object("The delay hurt sales.")

    def test_array_is_rejected(self):
        with pytest.raises(ValueError, match="list"):
            parse_json_object('[{"confidence": 80}]')


def _overloaded_error() -> OverloadedError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status_code=529, text="Overloaded", request=request)
    return OverloadedError(message="Overloaded", response=response, body=None)


class TestCreateMessageText:
    @pytest.mark.asyncio
    async def test_joins_text_blocks_and_passes_model(self):
        client = MagicMock()
        client.messages.create = AsyncMock(
            return_value=MagicMock(content=[MagicMock(text='{"a": '), MagicMock(text="1}")])
        )

        text = await create_message_text(
            client, model="claude-test", system="system", messages=[{"role": "user", "content": "hi"}], max_tokens=256
        )

        assert text == '{"a": 1}'
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 256
        assert kwargs["system"] == "system"

    @pytest.mark.asyncio
    async def test_non_overload_errors_are_not_retried(self):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=ValueError("bad request"))

        with pytest.raises(ValueError):
            await create_message_text(client, model="claude-test", system="system", messages=[], max_tokens=16)

        assert client.messages.create.call_count == 1

    @pytest.mark.asyncio
    async def test_overload_is_retried_then_succeeds(self):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=[_overloaded_error(), MagicMock(content=[MagicMock(text="OK")])])

        text = await create_message_text.retry_with(wait=wait_none())(
            client, model="claude-test", system="system", messages=[], max_tokens=16
        )

        assert text == "OK"
        assert client.messages.create.call_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_overload_retries_reraise(self):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=_overloaded_error())

        with pytest.raises(OverloadedError):
            await create_message_text.retry_with(wait=wait_none())(
                client, model="claude-test", system="system", messages=[], max_tokens=16
            )

        assert client.messages.create.call_count == OVERLOAD_ATTEMPTS
