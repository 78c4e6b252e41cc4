import asyncio
from collections.abc import Sequence

from sidecar.analysis.factory import build_router
from sidecar.analysis.models import AuthoredMessage, SituationBrief, SituationConnection, SituationDigest
from sidecar.analysis.result import AnalysisOutcome
from sidecar.analysis.router import TrustTierRouter
from sidecar.anonymization.factory import AnonymizationSessionFactory
from sidecar.anonymization.models import Participant
from sidecar.anonymization.session import AnonymizationSession
from sidecar.config.settings import Settings
from sidecar.crypto.base import BaseKeyCustodian
from sidecar.crypto.factory import KeyCustodianFactory
from sidecar.logging.logger import Log
from sidecar.processor.models import Communication, Situation, SituationAnalysis
from sidecar.processor.vault import CommunicationVault


class SituationProcessor:
    """Orchestrates analysis of one situation across both trust tiers.

    Pipeline: decrypt -> local analysis (tone, stakeholders, threads, risks,
    summary) -> anonymize -> remote suggestions. Raw text never leaves this
    object except through the local tier; the remote tier only receives
    payloads issued by a session created for the request.
    """

    def __init__(
        self,
        *,
        vault: CommunicationVault,
        router: TrustTierRouter,
        sessions: AnonymizationSessionFactory,
    ) -> None:
        self._vault = vault
        self._router = router
        self._sessions = sessions

    async def analyze(self, situation: Situation) -> SituationAnalysis:
        """Run the full analysis for *situation*."""
        Log.info(
            f"Analyzing situation {situation.id}: "
            f"{len(situation.communications)} communications, "
            f"{len(situation.participants)} participants"
        )
        result = SituationAnalysis(situation_id=situation.id)

        # Step 1: Decrypt
        readable, result.unreadable = await self._vault.read_many(situation.communications)
        messages = [
            AuthoredMessage(author=comm.author_name, content=text, timestamp=comm.timestamp)
            for comm, text in readable
        ]

        # Step 2: Tone per communication
        tones = await asyncio.gather(
            *(
                self._router.analyze_tone(text, comm.author_name, comm.timestamp)
                for comm, text in readable
            )
        )
        result.tone_history = [outcome.value for outcome in tones]
        if any(not outcome.available for outcome in tones):
            result.unavailable.append("tone")

        # Step 3: Stakeholders, threads, risks and summary
        stakeholders, threads, risks, summary = await asyncio.gather(
            asyncio.gather(
                *(
                    self._router.analyze_stakeholder(
                        participant, _messages_by(participant, readable)
                    )
                    for participant in situation.participants
                )
            ),
            self._router.extract_unresolved_threads(messages),
            self._router.detect_risk_signals(messages, result.tone_history),
            self._router.generate_summary(
                situation.title,
                situation.description,
                [participant.name for participant in situation.participants],
                messages,
            ),
        )
        result.stakeholders = [outcome.value for outcome in stakeholders]
        if any(not outcome.available for outcome in stakeholders):
            result.unavailable.append("stakeholders")
        result.unresolved_threads = threads.value
        result.risk_signals = risks.value
        result.summary = summary.value
        for name, outcome in (
            ("unresolved_threads", threads),
            ("risk_signals", risks),
            ("summary", summary),
        ):
            if not outcome.available:
                result.unavailable.append(name)

        # Step 4: Anonymize and ask the remote tier for next steps
        session = self._new_session(situation.participants)
        actions = await self._router.suggest_actions(
            session,
            session.anonymize(result.summary).payload,
            session.anonymize(_analysis_context(situation, result)).payload,
        )
        result.suggested_actions = actions.value
        if not actions.available:
            result.unavailable.append("suggested_actions")

        Log.info(
            f"Situation {situation.id} analyzed: "
            f"{len(result.unresolved_threads)} threads, {len(result.risk_signals)} risks, "
            f"{len(result.suggested_actions)} actions, "
            f"unavailable={result.unavailable or 'none'}"
        )
        return result

    async def brief(
        self,
        situation: Situation,
        analysis: SituationAnalysis,
    ) -> AnalysisOutcome[SituationBrief]:
        """Generate a remote brief from an existing analysis."""
        session = self._new_session(situation.participants)
        description = _situation_text(situation)
        if analysis.summary:
            description += f"\n\nSummary:\n{analysis.summary}"
        return await self._router.generate_brief(
            session,
            session.anonymize(description).payload,
            session.anonymize(_analysis_context(situation, analysis)).payload,
        )

    async def related(
        self,
        situation: Situation,
        others: Sequence[Situation],
    ) -> AnalysisOutcome[list[SituationConnection]]:
        """Find which of *others* look connected to *situation*.

        One session spans every situation so a person shared between them
        gets the same placeholder everywhere.
        """
        session = self._new_session(
            [p for s in (situation, *others) for p in s.participants]
        )
        current = SituationDigest(situation.id, session.anonymize(_situation_text(situation)).payload)
        digests = [
            SituationDigest(other.id, session.anonymize(_situation_text(other)).payload)
            for other in others
            if other.id != situation.id
        ]
        return await self._router.detect_connections(session, current, digests)

    def _new_session(self, participants: Sequence[Participant]) -> AnonymizationSession:
        session = self._sessions.create()
        session.register_participants(participants)
        return session


def _messages_by(
    participant: Participant,
    readable: Sequence[tuple[Communication, str]],
) -> list[str]:
    ids = {participant.id, participant.slack_id, participant.email}
    ids.discard(None)
    return [
        text
        for comm, text in readable
        if comm.author_id in ids or comm.author_name == participant.name
    ]


def _situation_text(situation: Situation) -> str:
    text = f"Situation: {situation.title}"
    if situation.description:
        text += f"\nDescription: {situation.description}"
    return text


def _analysis_context(situation: Situation, analysis: SituationAnalysis) -> str:
    names = {participant.id: participant.name for participant in situation.participants}
    lines = ["Key stakeholders:"]
    lines.extend(
        f"- {names.get(s.participant_id, s.participant_id)}: states \"{s.stated_position}\", "
        f"likely wants \"{s.inferred_intent}\" (engagement: {s.engagement_level})"
        for s in analysis.stakeholders
    )
    if analysis.unresolved_threads:
        lines.append("Unresolved items:")
        lines.extend(f"- [{t.type}] {t.description}" for t in analysis.unresolved_threads)
    if analysis.risk_signals:
        lines.append("Risk signals:")
        lines.extend(
            f"- {r.type} ({r.severity}): {r.description}" for r in analysis.risk_signals
        )
    return "\n".join(lines)


def build_processor(
    settings: Settings,
    custodian: BaseKeyCustodian | None = None,
) -> SituationProcessor:
    """Build a SituationProcessor with all required adapters."""
    vault = CommunicationVault(custodian or KeyCustodianFactory.create(settings))
    return SituationProcessor(
        vault=vault,
        router=build_router(settings),
        sessions=AnonymizationSessionFactory(settings),
    )
