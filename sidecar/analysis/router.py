"""Trust-tier routing of analysis operations.

Local operations may carry raw decrypted text and only ever reach the local
client. Remote operations accept AnonymizedPayload values issued by the
caller's AnonymizationSession; anything else is refused with PolicyViolation
before the remote client is touched. Upstream failures never escape: each
operation returns an AnalysisOutcome whose value is a documented default
when the model was unreachable or its output unusable.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

from sidecar.analysis import validator
from sidecar.analysis.client_base import BaseCompletionClient
from sidecar.analysis.exceptions import AnalysisError, AnalysisUnavailable, PolicyViolation
from sidecar.analysis.json_extractor import extract_json
from sidecar.analysis.models import (
    AuthoredMessage,
    CompletionOptions,
    ModelStatus,
    RiskSignal,
    SituationBrief,
    SituationConnection,
    SituationDigest,
    StakeholderAnalysis,
    SuggestedAction,
    ToneDataPoint,
    TrustTier,
    UnresolvedThread,
)
from sidecar.analysis.prompt_loader import load_prompt_template
from sidecar.analysis.result import AnalysisOutcome
from sidecar.anonymization.models import AnonymizedPayload, Participant
from sidecar.anonymization.session import AnonymizationSession
from sidecar.logging.logger import Log

T = TypeVar("T")

_TEMPLATES = (
    "tone",
    "stakeholder",
    "unresolved_threads",
    "risk_signals",
    "summary",
    "suggested_actions",
    "suggested_actions_system",
    "connections",
    "connections_system",
    "brief",
    "brief_system",
)

_STAKEHOLDER_MESSAGES = 10
_THREAD_MESSAGES = 20
_RISK_MESSAGES = 15
_RISK_TONE_POINTS = 10
_SUMMARY_MESSAGES = 20


class TrustTierRouter:
    """Routes each analysis operation to the collaborator its data class allows."""

    def __init__(
        self,
        *,
        local_client: BaseCompletionClient,
        remote_client: BaseCompletionClient | None = None,
        local_temperature: float = 0.3,
        remote_temperature: float = 0.2,
        prompt_dir: Path | None = None,
    ) -> None:
        self._local = local_client
        self._remote = remote_client
        self._local_temperature = local_temperature
        self._remote_temperature = remote_temperature
        self._templates = {name: load_prompt_template(name, prompt_dir) for name in _TEMPLATES}

    @property
    def remote_available(self) -> bool:
        return self._remote is not None

    async def local_status(self) -> ModelStatus:
        return await self._local.status()

    # ------------------------------------------------------------------
    # Local tier
    # ------------------------------------------------------------------

    async def analyze_tone(
        self,
        content: str,
        participant_name: str,
        timestamp: datetime | None = None,
    ) -> AnalysisOutcome[ToneDataPoint]:
        stamp = timestamp or datetime.now(timezone.utc)
        prompt = self._templates["tone"].format(participant=participant_name, content=content)

        async def call() -> ToneDataPoint:
            raw = await self._complete(TrustTier.LOCAL, prompt, self._local_options())
            return _decode(
                validator.decode_tone, raw, (dict,), participant=participant_name, timestamp=stamp
            )

        return await self._run("tone", call, validator.neutral_tone(participant_name, stamp))

    async def analyze_stakeholder(
        self,
        participant: Participant,
        messages: Sequence[str],
    ) -> AnalysisOutcome[StakeholderAnalysis]:
        default = validator.default_stakeholder(participant)
        if not messages:
            return AnalysisOutcome.ok(default)
        prompt = self._templates["stakeholder"].format(
            name=participant.name,
            role=participant.role or "Unknown role",
            messages="\n---\n".join(messages[:_STAKEHOLDER_MESSAGES]),
        )

        async def call() -> StakeholderAnalysis:
            raw = await self._complete(TrustTier.LOCAL, prompt, self._local_options(max_tokens=512))
            return _decode(validator.decode_stakeholder, raw, (dict,), participant=participant)

        return await self._run("stakeholder", call, default)

    async def extract_unresolved_threads(
        self,
        messages: Sequence[AuthoredMessage],
    ) -> AnalysisOutcome[list[UnresolvedThread]]:
        if not messages:
            return AnalysisOutcome.ok([])
        prompt = self._templates["unresolved_threads"].format(
            conversation=_transcript(messages[-_THREAD_MESSAGES:]),
        )
        raised_at = datetime.now(timezone.utc)

        async def call() -> list[UnresolvedThread]:
            raw = await self._complete(TrustTier.LOCAL, prompt, self._local_options())
            return _decode(validator.decode_threads, raw, (list,), raised_at=raised_at)

        return await self._run("unresolved threads", call, [])

    async def detect_risk_signals(
        self,
        messages: Sequence[AuthoredMessage],
        tone_history: Sequence[ToneDataPoint],
    ) -> AnalysisOutcome[list[RiskSignal]]:
        if not messages:
            return AnalysisOutcome.ok([])
        tone_lines = "\n".join(
            f"{point.participant}: {point.sentiment:.2f} ({', '.join(point.markers)})"
            for point in tone_history[-_RISK_TONE_POINTS:]
        )
        prompt = self._templates["risk_signals"].format(
            messages=_transcript(messages[-_RISK_MESSAGES:]),
            tone_history=tone_lines or "No tone history",
        )

        async def call() -> list[RiskSignal]:
            raw = await self._complete(TrustTier.LOCAL, prompt, self._local_options())
            return _decode(validator.decode_risks, raw, (list,))

        return await self._run("risk signals", call, [])

    async def generate_summary(
        self,
        title: str,
        description: str | None,
        participants: Sequence[str],
        messages: Sequence[AuthoredMessage],
    ) -> AnalysisOutcome[str]:
        prompt = self._templates["summary"].format(
            title=title,
            description_line=f"Description: {description}" if description else "",
            participants=", ".join(participants),
            messages=_transcript(messages[-_SUMMARY_MESSAGES:]),
        )

        async def call() -> str:
            raw = await self._complete(TrustTier.LOCAL, prompt, self._local_options(max_tokens=512))
            summary = raw.strip()
            if not summary:
                raise AnalysisUnavailable("Local model returned an empty summary")
            return summary

        return await self._run("summary", call, "")

    # ------------------------------------------------------------------
    # Remote tier
    # ------------------------------------------------------------------

    async def suggest_actions(
        self,
        session: AnonymizationSession,
        summary: AnonymizedPayload,
        context: AnonymizedPayload,
    ) -> AnalysisOutcome[list[SuggestedAction]]:
        self._enforce_remote_policy(session, summary, context)
        prompt = self._templates["suggested_actions"].format(
            summary=summary.text, context=context.text
        )
        options = self._remote_options(1500, self._templates["suggested_actions_system"])

        async def call() -> list[SuggestedAction]:
            raw = await self._complete(TrustTier.REMOTE, prompt, options)
            actions = _decode(validator.decode_actions, raw, (list,))
            if not actions:
                raise AnalysisUnavailable("Remote model suggested no usable actions")
            return self._restore(session, actions)

        return await self._run("suggested actions", call, validator.default_actions())

    async def detect_connections(
        self,
        session: AnonymizationSession,
        current: SituationDigest,
        others: Sequence[SituationDigest],
    ) -> AnalysisOutcome[list[SituationConnection]]:
        self._enforce_remote_policy(
            session, current.digest, *(other.digest for other in others)
        )
        if not others:
            return AnalysisOutcome.ok([])
        prompt = self._templates["connections"].format(
            current_id=current.situation_id,
            current=current.digest.text,
            others="\n\n".join(
                f"ID: {other.situation_id}\n{other.digest.text}" for other in others
            ),
        )
        options = self._remote_options(1024, self._templates["connections_system"])
        known_ids = {other.situation_id for other in others}

        async def call() -> list[SituationConnection]:
            raw = await self._complete(TrustTier.REMOTE, prompt, options)
            connections = _decode(
                validator.decode_connections, raw, (list,), known_ids=known_ids
            )
            return self._restore(session, connections)

        return await self._run("connections", call, [])

    async def generate_brief(
        self,
        session: AnonymizationSession,
        situation: AnonymizedPayload,
        context: AnonymizedPayload,
    ) -> AnalysisOutcome[SituationBrief]:
        self._enforce_remote_policy(session, situation, context)
        prompt = self._templates["brief"].format(situation=situation.text, context=context.text)
        options = self._remote_options(2000, self._templates["brief_system"])

        async def call() -> SituationBrief:
            raw = await self._complete(TrustTier.REMOTE, prompt, options)
            brief = _decode(validator.decode_brief, raw, (dict,))
            return self._restore(session, brief)

        return await self._run("brief", call, validator.default_brief())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _enforce_remote_policy(session: AnonymizationSession, *payloads: object) -> None:
        for payload in payloads:
            if not session.issued(payload):
                raise PolicyViolation(
                    f"Remote analysis refused a {type(payload).__name__} "
                    f"not issued by session {session.session_id}"
                )

    async def _complete(self, tier: TrustTier, prompt: str, options: CompletionOptions) -> str:
        client = self._local if tier is TrustTier.LOCAL else self._remote
        if client is None:
            raise AnalysisUnavailable(f"No {tier.value} model configured")
        try:
            return await client.complete(prompt, options)
        except AnalysisError as exc:
            raise AnalysisUnavailable(str(exc)) from exc
        except Exception as exc:
            raise AnalysisUnavailable(
                f"Unexpected {tier.value} model failure: {type(exc).__name__}"
            ) from exc

    @staticmethod
    async def _run(operation: str, call: Callable[[], Awaitable[T]], default: T) -> AnalysisOutcome[T]:
        try:
            return AnalysisOutcome.ok(await call())
        except AnalysisUnavailable as exc:
            Log.warning(f"Analysis '{operation}' unavailable, using default: {exc}")
            return AnalysisOutcome.unavailable(default, str(exc))

    def _restore(self, session: AnonymizationSession, value: Any) -> Any:
        """De-anonymize every string inside a decoded remote result."""
        if isinstance(value, str):
            return session.deanonymize(value)
        if isinstance(value, list):
            return [self._restore(session, item) for item in value]
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return dataclasses.replace(
                value,
                **{
                    f.name: self._restore(session, getattr(value, f.name))
                    for f in dataclasses.fields(value)
                },
            )
        return value

    def _local_options(self, max_tokens: int = 1024) -> CompletionOptions:
        return CompletionOptions(temperature=self._local_temperature, max_tokens=max_tokens)

    def _remote_options(self, max_tokens: int, system_prompt: str) -> CompletionOptions:
        return CompletionOptions(
            temperature=self._remote_temperature,
            max_tokens=max_tokens,
            system_prompt=system_prompt.strip(),
        )


def _transcript(messages: Sequence[AuthoredMessage]) -> str:
    return "\n\n".join(f"[{message.author}]: {message.content}" for message in messages)


def _decode(
    decoder: Callable[..., T],
    raw: str,
    prefer: tuple[type, ...],
    **kwargs: Any,
) -> T:
    """Extract and decode model output; any decoder failure means unusable output."""
    data = extract_json(raw, prefer=prefer)
    try:
        return decoder(data, **kwargs)
    except (ValueError, TypeError, OverflowError, RecursionError) as exc:
        raise AnalysisUnavailable(
            f"Model output could not be decoded: {type(exc).__name__}"
        ) from exc
