import asyncio
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from sidecar.analysis import validator
from sidecar.analysis.client_base import BaseCompletionClient
from sidecar.analysis.example_client_adapter import ExampleClientAdapter
from sidecar.analysis.exceptions import AnalysisNetworkError, PolicyViolation
from sidecar.analysis.models import (
    AuthoredMessage,
    CompletionOptions,
    SituationDigest,
    ToneDataPoint,
)
from sidecar.analysis.result import OutcomeStatus
from sidecar.analysis.router import TrustTierRouter
from sidecar.anonymization.models import AnonymizedPayload, Participant
from sidecar.anonymization.resolver import EntityResolver
from sidecar.anonymization.session import AnonymizationSession

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


class _FailingClient(BaseCompletionClient):
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.calls = 0

    async def complete(self, prompt: str, options: CompletionOptions) -> str:
        self.calls += 1
        raise self.exc


class _HangingClient(BaseCompletionClient):
    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def complete(self, prompt: str, options: CompletionOptions) -> str:
        self.started.set()
        await asyncio.sleep(3600)
        return "[]"


@pytest.fixture()
def session(resolver: EntityResolver, participants: list[Participant]) -> AnonymizationSession:
    s = AnonymizationSession(resolver)
    s.register_participants(participants)
    return s


def _router(
    local: BaseCompletionClient | None = None,
    remote: BaseCompletionClient | None = None,
) -> TrustTierRouter:
    return TrustTierRouter(
        local_client=local or ExampleClientAdapter(),
        remote_client=remote,
    )


class TestLocalTier:
    def test_raw_content_is_allowed(self) -> None:
        local = ExampleClientAdapter('{"sentiment": -0.5, "markers": ["frustrated"]}')
        outcome = asyncio.run(
            _router(local).analyze_tone("Jane Doe is upset about 555-123-4567", "Jane Doe", NOW)
        )
        assert outcome.available
        assert outcome.value.sentiment == -0.5
        assert outcome.value.markers == ["frustrated"]
        assert "Jane Doe is upset about 555-123-4567" in local.prompts[0]

    def test_tone_falls_back_to_neutral(self) -> None:
        local = _FailingClient(AnalysisNetworkError("Local model network error: refused"))
        outcome = asyncio.run(_router(local).analyze_tone("text", "Bob", NOW))
        assert outcome.status is OutcomeStatus.UNAVAILABLE
        assert outcome.value == validator.neutral_tone("Bob", NOW)
        assert "refused" in outcome.reason

    def test_malformed_output_is_unavailable(self) -> None:
        outcome = asyncio.run(
            _router(ExampleClientAdapter("I cannot help")).analyze_tone("t", "Bob", NOW)
        )
        assert not outcome.available
        assert outcome.value.sentiment == 0.0

    def test_unexpected_client_error_is_absorbed(self) -> None:
        local = _FailingClient(RuntimeError("segfault-ish"))
        outcome = asyncio.run(_router(local).extract_unresolved_threads([AuthoredMessage("a", "b")]))
        assert not outcome.available
        assert outcome.value == []

    def test_stakeholder(self, participants: list[Participant]) -> None:
        local = ExampleClientAdapter(
            '{"statedPosition": "Ship later", "inferredIntent": "Avoid blame", '
            '"communicationStyle": "Terse", "engagementLevel": "low"}'
        )
        outcome = asyncio.run(
            _router(local).analyze_stakeholder(participants[1], [f"msg {i}" for i in range(15)])
        )
        assert outcome.value.participant_id == "p2"
        assert outcome.value.engagement_level == "low"
        assert "msg 9" in local.prompts[0]
        assert "msg 10" not in local.prompts[0]

    def test_stakeholder_without_messages_skips_model(self, participants: list[Participant]) -> None:
        local = ExampleClientAdapter()
        outcome = asyncio.run(_router(local).analyze_stakeholder(participants[1], []))
        assert outcome.available
        assert outcome.value.stated_position == "Ship the rewrite first"
        assert local.prompts == []

    def test_threads_use_last_twenty_messages(self) -> None:
        local = ExampleClientAdapter('[{"description": "Who signs off?", "type": "question"}]')
        messages = [AuthoredMessage(author="Ann", content=f"line-{i:02d}") for i in range(30)]
        outcome = asyncio.run(_router(local).extract_unresolved_threads(messages))
        assert [t.description for t in outcome.value] == ["Who signs off?"]
        assert "line-09" not in local.prompts[0]
        assert "line-10" in local.prompts[0]
        assert "[Ann]: line-29" in local.prompts[0]

    def test_risks_include_tone_history(self) -> None:
        local = ExampleClientAdapter('[{"type": "escalation", "severity": "high", "description": "d"}]')
        tones = [ToneDataPoint(NOW, "Ann", -0.75, ["defensive"])]
        outcome = asyncio.run(
            _router(local).detect_risk_signals([AuthoredMessage("Ann", "No.")], tones)
        )
        assert outcome.value[0].severity == "high"
        assert "Ann: -0.75 (defensive)" in local.prompts[0]

    def test_empty_inputs_skip_model(self) -> None:
        local = ExampleClientAdapter()
        router = _router(local)
        assert asyncio.run(router.extract_unresolved_threads([])).value == []
        assert asyncio.run(router.detect_risk_signals([], [])).value == []
        assert local.prompts == []

    def test_summary(self) -> None:
        local = ExampleClientAdapter("  The team disagrees on scope.  ")
        outcome = asyncio.run(
            _router(local).generate_summary(
                "Scope dispute", "Q3 planning", ["Ann", "Bob"], [AuthoredMessage("Ann", "hi")]
            )
        )
        assert outcome.value == "The team disagrees on scope."
        assert "Description: Q3 planning" in local.prompts[0]
        assert "Participants: Ann, Bob" in local.prompts[0]

    def test_empty_summary_is_unavailable(self) -> None:
        outcome = asyncio.run(
            _router(ExampleClientAdapter("   ")).generate_summary("t", None, [], [])
        )
        assert not outcome.available
        assert outcome.value == ""

    def test_local_status(self) -> None:
        status = asyncio.run(_router().local_status())
        assert status.available


class TestRemotePolicy:
    def test_raw_string_is_refused_before_any_call(self, session: AnonymizationSession) -> None:
        remote = ExampleClientAdapter("[]")
        router = _router(remote=remote)
        context = session.anonymize("context").payload
        with pytest.raises(PolicyViolation):
            asyncio.run(router.suggest_actions(session, "Jane Doe is blocked", context))  # type: ignore[arg-type]
        assert remote.prompts == []

    def test_forged_payload_is_refused(self, session: AnonymizationSession) -> None:
        remote = ExampleClientAdapter("{}")
        forged = AnonymizedPayload("Jane Doe", session.session_id, "not-issued")
        with pytest.raises(PolicyViolation):
            asyncio.run(_router(remote=remote).generate_brief(session, forged, forged))
        assert remote.prompts == []

    def test_payload_from_other_session_is_refused(
        self, session: AnonymizationSession, resolver: EntityResolver
    ) -> None:
        remote = ExampleClientAdapter("[]")
        foreign = AnonymizationSession(resolver).anonymize("text").payload
        current = SituationDigest("s1", session.anonymize("mine").payload)
        with pytest.raises(PolicyViolation):
            asyncio.run(
                _router(remote=remote).detect_connections(
                    session, current, [SituationDigest("s2", foreign)]
                )
            )
        assert remote.prompts == []

    def test_policy_runs_even_without_remote_client(self, session: AnonymizationSession) -> None:
        with pytest.raises(PolicyViolation):
            asyncio.run(_router().suggest_actions(session, "raw", "raw"))  # type: ignore[arg-type]

    def test_same_raw_text_is_fine_locally(self) -> None:
        local = ExampleClientAdapter('{"sentiment": 0}')
        outcome = asyncio.run(_router(local).analyze_tone("Jane Doe is blocked", "Jane Doe", NOW))
        assert outcome.available


class TestRemoteTier:
    def test_remote_sees_placeholders_and_results_are_restored(
        self, session: AnonymizationSession
    ) -> None:
        remote = ExampleClientAdapter(
            '[{"priority": 1, "action": "Meet [PERSON_1] this week", '
            '"rationale": "[PERSON_1] is blocked", '
            '"suggestedQuestions": ["Can you reach person1@example.com?"]}]'
        )
        summary = session.anonymize("Jane Doe is blocked; email jane.doe@corp.com").payload
        context = session.anonymize("Bob Smith disagrees").payload
        outcome = asyncio.run(_router(remote=remote).suggest_actions(session, summary, context))

        assert outcome.available
        action = outcome.value[0]
        assert action.action == "Meet Jane Doe this week"
        assert action.rationale == "Jane Doe is blocked"
        assert action.suggested_questions == ["Can you reach jane.doe@corp.com?"]
        prompt = remote.prompts[0]
        assert "[PERSON_1] is blocked" in prompt
        assert "Jane" not in prompt
        assert "Bob" not in prompt
        assert "corp.com" not in prompt

    def test_no_remote_client_returns_default_actions(self, session: AnonymizationSession) -> None:
        payload = session.anonymize("summary").payload
        outcome = asyncio.run(_router().suggest_actions(session, payload, payload))
        assert outcome.status is OutcomeStatus.UNAVAILABLE
        assert outcome.value == validator.default_actions()
        assert "No remote model" in outcome.reason

    def test_remote_failure_returns_default_brief(self, session: AnonymizationSession) -> None:
        remote = _FailingClient(AnalysisNetworkError("AI provider network error"))
        payload = session.anonymize("summary").payload
        outcome = asyncio.run(_router(remote=remote).generate_brief(session, payload, payload))
        assert not outcome.available
        assert outcome.value == validator.default_brief()
        assert remote.calls == 1

    def test_actions_without_usable_items_are_unavailable(
        self, session: AnonymizationSession
    ) -> None:
        payload = session.anonymize("summary").payload
        remote = ExampleClientAdapter('[{"priority": 1}]')
        outcome = asyncio.run(_router(remote=remote).suggest_actions(session, payload, payload))
        assert not outcome.available
        assert outcome.value == validator.default_actions()

    def test_brief_is_restored(self, session: AnonymizationSession) -> None:
        remote = ExampleClientAdapter(
            'Here you go: {"executiveSummary": "[PERSON_1] and [PERSON_2] disagree.", '
            '"keyInsights": ["[PERSON_2] is quiet"]}'
        )
        situation = session.anonymize("Jane Doe vs Bob Smith").payload
        context = session.anonymize("").payload
        outcome = asyncio.run(_router(remote=remote).generate_brief(session, situation, context))
        assert outcome.value.executive_summary == "Jane Doe and Bob Smith disagree."
        assert outcome.value.key_insights == ["Bob Smith is quiet"]
        assert outcome.value.watch_points == validator.default_brief().watch_points
        assert "[PERSON_1] vs [PERSON_2]" in remote.prompts[0]

    def test_connections(self, session: AnonymizationSession) -> None:
        remote = ExampleClientAdapter(
            '[{"situationId": "s2", "connectionStrength": "strong", '
            '"reason": "[PERSON_1] appears in both", "sharedThemes": ["launch"]}, '
            '{"situationId": "s404", "reason": "hallucinated"}]'
        )
        current = SituationDigest("s1", session.anonymize("Jane Doe owns the launch").payload)
        others = [SituationDigest("s2", session.anonymize("Jane Doe is on call").payload)]
        outcome = asyncio.run(
            _router(remote=remote).detect_connections(session, current, others)
        )
        assert [c.situation_id for c in outcome.value] == ["s2"]
        assert outcome.value[0].reason == "Jane Doe appears in both"
        assert "ID: s2" in remote.prompts[0]
        assert "Jane" not in remote.prompts[0]

    def test_connections_without_candidates_skip_model(
        self, session: AnonymizationSession
    ) -> None:
        remote = ExampleClientAdapter("[]")
        current = SituationDigest("s1", session.anonymize("alone").payload)
        outcome = asyncio.run(_router(remote=remote).detect_connections(session, current, []))
        assert outcome.available
        assert outcome.value == []
        assert remote.prompts == []

    def test_remote_available(self) -> None:
        assert _router(remote=ExampleClientAdapter()).remote_available
        assert not _router().remote_available


class TestCancellation:
    def test_cancelled_remote_call_leaves_session_usable(
        self, session: AnonymizationSession
    ) -> None:
        remote = _HangingClient()
        router = _router(remote=remote)

        async def scenario() -> None:
            summary = session.anonymize("Jane Doe is blocked").payload
            context = session.anonymize("Bob Smith waits").payload
            task = asyncio.create_task(router.suggest_actions(session, summary, context))
            await remote.started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert session.entity_map() == {
            "person:jane doe": "[PERSON_1]",
            "person:bob smith": "[PERSON_2]",
        }
        assert session.anonymize("Bob Smith and Jane Doe").anonymized_text == (
            "[PERSON_2] and [PERSON_1]"
        )
        assert session.deanonymize("[PERSON_1]") == "Jane Doe"


class TestHostileOutput:
    def test_integer_too_large_for_float_is_ignored(self) -> None:
        local = ExampleClientAdapter('{"sentiment": ' + "9" * 400 + ', "markers": ["calm"]}')
        outcome = asyncio.run(_router(local).analyze_tone("t", "Bob", NOW))
        assert outcome.available
        assert outcome.value.sentiment == 0.0
        assert outcome.value.markers == ["calm"]

    def test_huge_priority_falls_back_to_position(self, session: AnonymizationSession) -> None:
        payload = session.anonymize("summary").payload
        remote = ExampleClientAdapter('[{"priority": ' + "9" * 400 + ', "action": "Talk"}]')
        outcome = asyncio.run(_router(remote=remote).suggest_actions(session, payload, payload))
        assert outcome.available
        assert outcome.value[0].priority == 1

    def test_deep_nesting_is_unavailable(self) -> None:
        local = ExampleClientAdapter("[" * 100000)
        outcome = asyncio.run(_router(local).analyze_tone("t", "Bob", NOW))
        assert not outcome.available
        assert outcome.value == validator.neutral_tone("Bob", NOW)

    def test_deep_nesting_in_list_operation(self) -> None:
        local = ExampleClientAdapter('Sure: ' + '{"a": ' * 50000)
        outcome = asyncio.run(
            _router(local).extract_unresolved_threads([AuthoredMessage("Ann", "Hi")])
        )
        assert not outcome.available
        assert outcome.value == []

    @pytest.mark.parametrize("raw", ['["calm", 1]', "[[]]", "42"])
    def test_wrong_shape_where_object_expected(self, raw: str) -> None:
        outcome = asyncio.run(_router(ExampleClientAdapter(raw)).analyze_tone("t", "Bob", NOW))
        assert not outcome.available
        assert outcome.value.sentiment == 0.0

    def test_array_without_objects_yields_nothing(self) -> None:
        outcome = asyncio.run(
            _router(ExampleClientAdapter('[1, "two", null]')).extract_unresolved_threads(
                [AuthoredMessage("Ann", "Hi")]
            )
        )
        assert outcome.value == []

    def test_decoder_bug_becomes_default(self) -> None:
        local = ExampleClientAdapter('[{"type": "blocker"}]')
        with patch(
            "sidecar.analysis.validator.decode_risks", side_effect=TypeError("unexpected field")
        ):
            outcome = asyncio.run(
                _router(local).detect_risk_signals([AuthoredMessage("Ann", "No.")], [])
            )
        assert not outcome.available
        assert outcome.value == []
        assert "TypeError" in outcome.reason


class TestDefaultsAreFresh:
    def test_brief_default_is_not_shared(self, session: AnonymizationSession) -> None:
        payload = session.anonymize("summary").payload
        router = _router()
        first = asyncio.run(router.generate_brief(session, payload, payload))
        first.value.key_insights.append("mutated")
        second = asyncio.run(router.generate_brief(session, payload, payload))
        assert second.value.key_insights == ["Manual review recommended"]

    def test_action_defaults_are_not_shared(self, session: AnonymizationSession) -> None:
        payload = session.anonymize("summary").payload
        router = _router()
        first = asyncio.run(router.suggest_actions(session, payload, payload))
        first.value[0].suggested_questions.append("mutated")  # type: ignore[union-attr]
        second = asyncio.run(router.suggest_actions(session, payload, payload))
        assert "mutated" not in (second.value[0].suggested_questions or [])
