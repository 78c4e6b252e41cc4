from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from sidecar.anonymization.models import AnonymizedPayload


class TrustTier(str, Enum):
    """Which collaborator may see which class of data."""

    LOCAL = "local"  # raw decrypted content allowed
    REMOTE = "remote"  # anonymized payloads only


@dataclass(frozen=True)
class CompletionOptions:
    """Generation options passed to a completion client."""

    temperature: float = 0.3
    top_p: float = 0.9
    max_tokens: int = 1024
    system_prompt: str = ""


@dataclass(frozen=True)
class ModelStatus:
    """Reachability of a completion backend."""

    available: bool
    model_loaded: bool
    error: str | None = None


@dataclass(frozen=True)
class AuthoredMessage:
    """Decrypted message text with its author's display name."""

    author: str
    content: str
    timestamp: datetime | None = None


@dataclass(frozen=True)
class ToneDataPoint:
    """Sentiment of one message."""

    timestamp: datetime
    participant: str
    sentiment: float  # -1.0 .. 1.0
    markers: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class StakeholderAnalysis:
    """Position and intent inferred for one participant."""

    participant_id: str
    stated_position: str
    inferred_intent: str
    communication_style: str
    engagement_level: str  # "high" | "medium" | "low"


@dataclass(frozen=True)
class UnresolvedThread:
    """An open question, commitment, decision or action item."""

    id: str
    description: str
    type: str  # "question" | "commitment" | "decision" | "action_item"
    raised_by: str
    raised_at: datetime
    context: str = ""


@dataclass(frozen=True)
class RiskSignal:
    """A detected risk in the communication pattern."""

    type: str  # "disengagement" | "escalation" | "misalignment" | "blocker"
    severity: str  # "low" | "medium" | "high"
    description: str
    evidence: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SuggestedAction:
    """A next step suggested for the manager."""

    priority: int
    action: str
    rationale: str
    suggested_questions: list[str] | None = None


@dataclass(frozen=True)
class SituationDigest:
    """Anonymized description of one situation for connection detection."""

    situation_id: str
    digest: AnonymizedPayload


@dataclass(frozen=True)
class SituationConnection:
    """A possible link between the current and another situation."""

    situation_id: str
    connection_strength: str  # "strong" | "moderate" | "weak"
    reason: str
    shared_themes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SituationBrief:
    """Condensed brief for a situation."""

    executive_summary: str
    key_insights: list[str] = field(default_factory=list)
    immediate_actions: list[str] = field(default_factory=list)
    questions_to_ask: list[str] = field(default_factory=list)
    watch_points: list[str] = field(default_factory=list)
