"""Reasoning service clients for correlation narratives.

Architecture:
- ReasoningService is a structural protocol: explain(request) -> ReasoningResponse
- DeterministicReasoningService answers locally with the rule-based fallback
- AnthropicReasoningService calls the Messages API directly with
  asyncio.wait_for(timeout) around a tenacity retry on 529 overload
- Responses are fence-stripped, parsed as JSON and validated with pydantic
- Every failure surfaces as ReasoningServiceError (or the underlying API error);
  the correlation engine turns any of them into the deterministic fallback
"""

import asyncio
import json
from typing import Protocol

import anthropic
import structlog
from pydantic import ValidationError

from marketing_ops.core.config import Settings, get_settings
from marketing_ops.core.exceptions import ReasoningServiceError
from marketing_ops.domain.correlation import EventType, ExecutionEvent, MetricChange, fallback_explanation
from marketing_ops.schemas.reasoning import ReasoningRequest, ReasoningResponse
from marketing_ops.services.llm_helpers import create_message_text, parse_json_object

logger = structlog.get_logger(__name__)

_SYSTEM_PROMPT: str = (
    "You are a marketing operations analyst. You explain how campaign execution "
    "events (delays, early completions, phase changes, task completions) relate to "
    "weekly performance metrics. Be specific and causal, never speculative beyond "
    "the data. Respond with a single JSON object and nothing else."
)

_RESPONSE_SHAPE: str = (
    "{\n"
    '  "performance_impact": "positive" | "negative" | "neutral" | "unknown",\n'
    '  "correlation_strength": "strong" | "moderate" | "weak" | "none",\n'
    '  "ai_analysis": "2-3 sentences linking the event to the metric changes",\n'
    '  "confidence": 0-100,\n'
    '  "reason_chain": "event -> mechanism -> metric effect",\n'
    '  "actionable_insight": "one concrete recommendation"\n'
    "}"
)


class ReasoningService(Protocol):
    async def explain(self, request: ReasoningRequest) -> ReasoningResponse: ...


class DeterministicReasoningService:
    """Local rule-based explainer, the same verdict the engine falls back to on failure.

    Used when no live reasoning is configured, and in tests.
    """

    async def explain(self, request: ReasoningRequest) -> ReasoningResponse:
        event = ExecutionEvent(
            type=EventType(request.event.type),
            date=request.event.date,
            description=request.event.description,
            phase_name=request.event.phase_name,
            task_name=request.event.task_name,
            drift_days=request.event.drift_days,
        )
        changes = [
            MetricChange(c.metric, c.change_pct, c.previous_value, c.current_value) for c in request.metric_changes
        ]
        explanation = fallback_explanation(event, changes)
        return ReasoningResponse(
            performance_impact=explanation.performance_impact.value,
            correlation_strength=explanation.correlation_strength.value,
            ai_analysis=explanation.ai_analysis,
            confidence=explanation.confidence,
            actionable_insight=explanation.actionable_insight,
        )


class AnthropicReasoningService:
    """Live reasoning client backed by Claude.

    Public API:
        explain(request) -> ReasoningResponse

    Raises on any failure; callers own the fallback.
    """

    def __init__(
        self,
        client: object | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
    ):
        settings = get_settings()
        self._client = client or anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        self.model = model or settings.reasoning_model
        self.max_tokens = max_tokens or settings.reasoning_max_tokens
        self.timeout_seconds = timeout_seconds or settings.reasoning_timeout_seconds

    async def explain(self, request: ReasoningRequest) -> ReasoningResponse:
        """Ask Claude to explain one execution event.

        Raises:
            ReasoningServiceError: timeout, unparseable JSON or a response of the wrong shape
        """
        system_prompt, messages = self._build_prompt(request)

        try:
            text = await asyncio.wait_for(
                create_message_text(
                    self._client,
                    model=self.model,
                    system=system_prompt,
                    messages=messages,
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as exc:
            raise ReasoningServiceError(f"Reasoning call timed out after {self.timeout_seconds}s") from exc

        try:
            payload = parse_json_object(text)
        except json.JSONDecodeError as exc:
            raise ReasoningServiceError(f"Reasoning response is not JSON: {exc}") from exc
        except ValueError as exc:
            raise ReasoningServiceError(f"Reasoning response is not a JSON object: {exc}") from exc

        try:
            return ReasoningResponse.model_validate(payload)
        except ValidationError as exc:
            raise ReasoningServiceError(f"Reasoning response has the wrong shape: {exc}") from exc

    def _build_prompt(self, request: ReasoningRequest) -> tuple[str, list[dict]]:
        """Build system prompt and messages list for one event.

        Returns:
            Tuple of (system_prompt, messages_list)
        """
        event = request.event
        if request.metric_changes:
            changes = "\n".join(
                f"- {c.metric}: {c.change_pct:+.1f}% ({c.previous_value:,.0f} -> {c.current_value:,.0f})"
                for c in request.metric_changes
            )
        else:
            changes = "- No significant metric changes"

        trend = "\n".join(
            f"- Week of {t.week_starting.isoformat()}: sales {t.total_sales:,.0f}, "
            f"revenue {t.total_revenue:,.0f}, engagement {t.total_engagement:,.0f}, views {t.total_views:,.0f}"
            for t in request.trend
        ) or "- No reports"

        user_content = (
            f"Campaign: {request.campaign_name}\n\n"
            f"Execution event ({event.type}) on {event.date.date().isoformat()}:\n"
            f"{event.description}\n"
            f"Phase: {event.phase_name or 'n/a'}\n"
            f"Task: {event.task_name or 'n/a'}\n"
            f"Drift days: {event.drift_days if event.drift_days is not None else 'n/a'}\n\n"
            f"Metric changes around the event:\n{changes}\n\n"
            f"Recent weekly trend:\n{trend}\n\n"
            f"Respond with JSON in exactly this shape:\n{_RESPONSE_SHAPE}"
        )
        messages = [{"role": "user", "content": user_content}]
        return _SYSTEM_PROMPT, messages


def build_reasoning_service(settings: Settings | None = None) -> ReasoningService:
    """Live client when reasoning is enabled and a key is configured, else the deterministic one."""
    settings = settings or get_settings()
    if not settings.reasoning_enabled or not settings.anthropic_api_key:
        logger.info("reasoning_service_disabled", reasoning_enabled=settings.reasoning_enabled)
        return DeterministicReasoningService()
    return AnthropicReasoningService(
        client=anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key),
        model=settings.reasoning_model,
        max_tokens=settings.reasoning_max_tokens,
        timeout_seconds=settings.reasoning_timeout_seconds,
    )
