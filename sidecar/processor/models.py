from dataclasses import dataclass, field
from datetime import datetime

from sidecar.analysis.models import (
    RiskSignal,
    StakeholderAnalysis,
    SuggestedAction,
    ToneDataPoint,
    UnresolvedThread,
)
from sidecar.anonymization.models import Participant


@dataclass(frozen=True)
class MessageRecord:
    """Raw message as supplied by a provider client (Slack, Gmail, Zoom)."""

    id: str
    author_id: str
    author_name: str
    timestamp: datetime
    text: str


@dataclass(frozen=True)
class Communication:
    """Stored message; content lives only inside the encrypted envelope."""

    id: str
    situation_id: str
    source: str
    author_id: str
    author_name: str
    timestamp: datetime
    encrypted_content: str  # "iv:tag:ciphertext"
    content_hash: str  # sha256 of the plaintext


@dataclass(frozen=True)
class Situation:
    """A tracked workplace situation and its stored communications."""

    id: str
    title: str
    description: str | None = None
    participants: list[Participant] = field(default_factory=list)
    communications: list[Communication] = field(default_factory=list)


@dataclass
class SituationAnalysis:
    """Accumulates results as a situation moves through analysis."""

    situation_id: str
    summary: str = ""
    tone_history: list[ToneDataPoint] = field(default_factory=list)
    stakeholders: list[StakeholderAnalysis] = field(default_factory=list)
    unresolved_threads: list[UnresolvedThread] = field(default_factory=list)
    risk_signals: list[RiskSignal] = field(default_factory=list)
    suggested_actions: list[SuggestedAction] = field(default_factory=list)
    unavailable: list[str] = field(default_factory=list)  # operations that fell back
    unreadable: list[str] = field(default_factory=list)  # communication ids
