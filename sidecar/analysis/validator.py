"""Schema-validating decoders for parsed model output.

Each decoder accepts a superset of shapes (an object wrapped in a list, a
list wrapped in an object) and maps every field through an allow-list or an
explicit default. A decoder raises AnalysisUnavailable only when no usable
top-level shape exists at all; bad individual fields never fail the call.
"""

import math
from datetime import datetime
from typing import Any

from sidecar.analysis.exceptions import AnalysisUnavailable
from sidecar.analysis.models import (
    RiskSignal,
    SituationBrief,
    SituationConnection,
    StakeholderAnalysis,
    SuggestedAction,
    ToneDataPoint,
    UnresolvedThread,
)
from sidecar.anonymization.models import Participant

ENGAGEMENT_LEVELS = ("high", "medium", "low")
THREAD_TYPES = ("question", "commitment", "decision", "action_item")
RISK_TYPES = ("disengagement", "escalation", "misalignment", "blocker")
RISK_SEVERITIES = ("low", "medium", "high")
CONNECTION_STRENGTHS = ("strong", "moderate", "weak")

_MAX_ITEMS = 50

_BRIEF_SUMMARY = "Analysis could not be completed. Review the raw data for insights."


def default_actions() -> list[SuggestedAction]:
    return [
        SuggestedAction(
            priority=1,
            action="Schedule a 1:1 with the primary stakeholder",
            rationale="Direct communication often resolves unclear situations",
            suggested_questions=[
                "What's your ideal outcome here?",
                "What concerns you most about the current state?",
            ],
        ),
        SuggestedAction(
            priority=2,
            action="Document the current state and share with all parties",
            rationale="Shared understanding prevents miscommunication",
        ),
    ]


def default_brief() -> SituationBrief:
    return SituationBrief(
        executive_summary=_BRIEF_SUMMARY,
        key_insights=["Manual review recommended"],
        immediate_actions=["Review communications directly", "Schedule sync with key stakeholders"],
        questions_to_ask=["What is the current status?", "What blockers exist?"],
        watch_points=["Communication frequency", "Tone changes"],
    )


def neutral_tone(participant: str, timestamp: datetime) -> ToneDataPoint:
    return ToneDataPoint(timestamp=timestamp, participant=participant, sentiment=0.0, markers=[])


def default_stakeholder(participant: Participant) -> StakeholderAnalysis:
    return StakeholderAnalysis(
        participant_id=participant.id,
        stated_position=participant.stated_position or "Unknown",
        inferred_intent=participant.inferred_intent or "Unknown",
        communication_style="Unknown",
        engagement_level="medium",
    )


# ----------------------------------------------------------------------
# Decoders
# ----------------------------------------------------------------------


def decode_tone(data: Any, *, participant: str, timestamp: datetime) -> ToneDataPoint:
    obj = _as_object(data)
    return ToneDataPoint(
        timestamp=timestamp,
        participant=participant,
        sentiment=_clamp(_number(obj.get("sentiment"), 0.0), -1.0, 1.0),
        markers=_str_list(obj.get("markers")),
    )


def decode_stakeholder(data: Any, *, participant: Participant) -> StakeholderAnalysis:
    obj = _as_object(data)
    return StakeholderAnalysis(
        participant_id=participant.id,
        stated_position=_str(obj.get("statedPosition")),
        inferred_intent=_str(obj.get("inferredIntent")),
        communication_style=_str(obj.get("communicationStyle")),
        engagement_level=_choice(obj.get("engagementLevel"), ENGAGEMENT_LEVELS, "medium"),
    )


def decode_threads(data: Any, *, raised_at: datetime) -> list[UnresolvedThread]:
    stamp = int(raised_at.timestamp() * 1000)
    threads: list[UnresolvedThread] = []
    for index, item in enumerate(_objects(_as_array(data))):
        threads.append(
            UnresolvedThread(
                id=f"thread_{stamp}_{index}",
                description=_str(item.get("description")),
                type=_choice(item.get("type"), THREAD_TYPES, "question"),
                raised_by=_str(item.get("raisedBy"), "unknown"),
                raised_at=raised_at,
                context=_str(item.get("context")),
            )
        )
    return threads


def decode_risks(data: Any) -> list[RiskSignal]:
    return [
        RiskSignal(
            type=_choice(item.get("type"), RISK_TYPES, "misalignment"),
            severity=_choice(item.get("severity"), RISK_SEVERITIES, "low"),
            description=_str(item.get("description")),
            evidence=_str_list(item.get("evidence")),
        )
        for item in _objects(_as_array(data))
    ]


def decode_actions(data: Any) -> list[SuggestedAction]:
    """Decode suggested actions; items without an action text are dropped."""
    actions: list[SuggestedAction] = []
    for index, item in enumerate(_objects(_as_array(data))):
        action = _str(item.get("action"))
        if not action:
            continue
        questions = item.get("suggestedQuestions")
        actions.append(
            SuggestedAction(
                priority=_positive_int(item.get("priority"), index + 1),
                action=action,
                rationale=_str(item.get("rationale")),
                suggested_questions=_str_list(questions) if isinstance(questions, list) else None,
            )
        )
    return actions


def decode_connections(data: Any, *, known_ids: set[str]) -> list[SituationConnection]:
    """Decode connections; entries naming unknown situation ids are dropped."""
    connections: list[SituationConnection] = []
    for item in _objects(_as_array(data)):
        situation_id = _str(item.get("situationId"))
        if situation_id not in known_ids:
            continue
        connections.append(
            SituationConnection(
                situation_id=situation_id,
                connection_strength=_choice(
                    item.get("connectionStrength"), CONNECTION_STRENGTHS, "weak"
                ),
                reason=_str(item.get("reason")),
                shared_themes=_str_list(item.get("sharedThemes")),
            )
        )
    return connections


def decode_brief(data: Any) -> SituationBrief:
    obj = _as_object(data)
    fallback = default_brief()
    return SituationBrief(
        executive_summary=_str(obj.get("executiveSummary"), fallback.executive_summary),
        key_insights=_str_list(obj.get("keyInsights"), fallback.key_insights),
        immediate_actions=_str_list(obj.get("immediateActions"), fallback.immediate_actions),
        questions_to_ask=_str_list(obj.get("questionsToAsk"), fallback.questions_to_ask),
        watch_points=_str_list(obj.get("watchPoints"), fallback.watch_points),
    )


# ----------------------------------------------------------------------
# Field helpers
# ----------------------------------------------------------------------


def _as_object(data: Any) -> dict[str, Any]:
    if isinstance(data, dict):
        return data
    if isinstance(data, list):
        for item in data:
            if isinstance(item, dict):
                return item
    raise AnalysisUnavailable(f"Expected a JSON object, got {type(data).__name__}")


def _as_array(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data[:_MAX_ITEMS]
    if isinstance(data, dict):
        for value in data.values():
            if isinstance(value, list):
                return value[:_MAX_ITEMS]
        # A single item returned without its enclosing array
        return [data]
    raise AnalysisUnavailable(f"Expected a JSON array, got {type(data).__name__}")


def _objects(items: list[Any]) -> list[dict[str, Any]]:
    return [item for item in items if isinstance(item, dict)]


def _str(value: Any, default: str = "") -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _str_list(value: Any, default: list[str] | None = None) -> list[str]:
    if not isinstance(value, list):
        return list(default) if default is not None else []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> str:
    if isinstance(value, str) and value.strip().lower() in allowed:
        return value.strip().lower()
    return default


def _number(value: Any, default: float) -> float:
    # bool is an int subclass; "true" is not a sentiment
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    try:
        number = float(value)
    except OverflowError:
        return default
    if not math.isfinite(number):
        return default
    return number


def _positive_int(value: Any, default: int) -> int:
    number = _number(value, 0.0)
    if number < 1:
        return default
    return int(number)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
