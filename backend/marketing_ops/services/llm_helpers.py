"""Messages API call and reply parsing for the correlation reasoning client.

The prompt asks Claude for a single JSON object. Replies still arrive wrapped in
a ```json fence now and then, sometimes with a sentence around it.
"""

import json
import re
from typing import Any

import structlog
from anthropic._exceptions import OverloadedError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger(__name__)

OVERLOAD_ATTEMPTS = 4

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def extract_json_text(content: str) -> str:
    """Body of the first fenced block, or the whole reply when there is none."""
    match = _FENCED_BLOCK.search(content)
    return match.group(1) if match else content.strip()


def parse_json_object(content: str) -> dict:
    """Decode the reply as a JSON object.

    Raises:
        json.JSONDecodeError: the reply is not JSON
        ValueError: it is JSON but not an object
    """
    payload = json.loads(extract_json_text(content))
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object, got {type(payload).__name__}")
    return payload


def _log_overload_retry(state: RetryCallState) -> None:
    logger.warning(
        "reasoning_model_overloaded",
        attempt=state.attempt_number,
        sleep_seconds=state.next_action.sleep if state.next_action else None,
    )


@retry(
    retry=retry_if_exception_type(OverloadedError),
    stop=stop_after_attempt(OVERLOAD_ATTEMPTS),
    wait=wait_exponential(multiplier=2, min=2, max=30),
    reraise=True,
    before_sleep=_log_overload_retry,
)
async def create_message_text(
    client: Any,
    *,
    model: str,
    system: str,
    messages: list[dict],
    max_tokens: int,
) -> str:
    """One Messages API call, retried only while the API answers 529 overloaded.

    Returns the reply's text blocks joined together.
    """
    response = await client.messages.create(
        model=model,
        system=system,
        messages=messages,
        max_tokens=max_tokens,
    )
    return "".join(block.text for block in response.content if hasattr(block, "text"))
