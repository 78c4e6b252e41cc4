from collections.abc import Iterable
from dataclasses import dataclass, field

PERSON = "person"
EMAIL = "email"
PHONE = "phone"
URL_DOMAIN = "url-domain"
IP_ADDRESS = "ip-address"

BUILTIN_KINDS = (EMAIL, PHONE, PERSON, URL_DOMAIN, IP_ADDRESS)


@dataclass(frozen=True)
class Participant:
    """A known situation participant, used to seed name detection."""

    id: str
    name: str
    email: str | None = None
    slack_id: str | None = None
    role: str | None = None
    stated_position: str | None = None
    inferred_intent: str | None = None


@dataclass(frozen=True)
class KnownParticipantRoster:
    """Registered display names (and their fragments) and emails."""

    names: frozenset[str] = frozenset()
    emails: frozenset[str] = frozenset()

    @classmethod
    def from_participants(
        cls,
        participants: Iterable[Participant],
        min_fragment_length: int = 3,
    ) -> "KnownParticipantRoster":
        names: set[str] = set()
        emails: set[str] = set()
        for participant in participants:
            name = " ".join(participant.name.split()) if participant.name else ""
            if name:
                names.add(name.lower())
                # First/last name fragments; short ones would over-match initials
                for part in name.split():
                    if len(part) >= min_fragment_length:
                        names.add(part.lower())
            if participant.email and participant.email.strip():
                emails.add(participant.email.strip().lower())
        return cls(names=frozenset(names), emails=frozenset(emails))

    def merge(self, other: "KnownParticipantRoster") -> "KnownParticipantRoster":
        return KnownParticipantRoster(
            names=self.names | other.names,
            emails=self.emails | other.emails,
        )

    def __bool__(self) -> bool:
        return bool(self.names or self.emails)


@dataclass(frozen=True)
class Entity:
    """A detected PII span in the original text."""

    kind: str  # one of BUILTIN_KINDS or a custom kind
    original_text: str
    normalized_key: str  # identity used for placeholder lookup
    start: int
    end: int


@dataclass(frozen=True)
class Artifact:
    """Single PII replacement record, for local audit only."""

    type: str  # entity kind
    original: str  # original PII text
    replacement: str  # placeholder used in anonymized text, e.g. "[PERSON_1]"
    normalized_key: str = ""


@dataclass(frozen=True)
class AnonymizedPayload:
    """Text produced by an anonymization session.

    Only payloads issued by a session are accepted by the remote tier; the
    issue_id lets the session prove it produced this exact value.
    """

    text: str
    session_id: str
    issue_id: str

    def __str__(self) -> str:
        return self.text


@dataclass
class AnonymizationResult:
    """Output of AnonymizationSession.anonymize."""

    payload: AnonymizedPayload
    artifacts: list[Artifact] = field(default_factory=list)

    @property
    def anonymized_text(self) -> str:
        return self.payload.text
