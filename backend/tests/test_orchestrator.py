"""
Tests for the pipeline orchestrator: routing, gates, agent sequencing,
outbound items, cancellation and timeouts.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from conftest import (
    ANALYST_ONE_INSIGHT,
    COMPOSED_QUESTION,
    DEVIATION_FOUND,
    EMPLOYEE_ID,
    FAST_ADVICE,
    FAST_NEEDS_DEEP,
    FAST_STOP,
    HANG,
    INTERVENE,
    MEETING_ID,
    NO_DEVIATION,
    SESSION_KEY,
    STAY_SILENT,
    FakeClock,
    ScriptedClient,
    make_config,
)
from errors import ValidationError
from routers.assistant_orchestration import DebugStore, SessionStore, get_metrics, reset_metrics
from routers.assistant_orchestration.agents.types import AgentResult, DecisionOutput
from routers.assistant_orchestration.orchestrator import (
    EXPLICIT_MESSAGE,
    TEXT_CHANGED,
    AssistantOrchestrator,
    TurnListener,
    message_event,
)

NOTES = "Alex says the migration is going fine but mentions working every weekend lately."
MORE_NOTES = NOTES + " Also asked about the promotion timeline and team changes."

DEEP_INTERVENE = {
    "immediate": FAST_NEEDS_DEEP,
    "analyst": ANALYST_ONE_INSIGHT,
    "deviation": NO_DEVIATION,
    "decision": INTERVENE,
    "composer": COMPOSED_QUESTION,
}


class RecordingListener(TurnListener):
    def __init__(self):
        self.started = []
        self.finished = []
        self.logs = []

    async def turn_started(self, key):
        self.started.append(key)

    async def turn_finished(self, key, events):
        self.finished.append(events)

    async def pipeline_log(self, payload):
        self.logs.append(payload)


class OrchestratorTestBase:
    def setup_method(self):
        reset_metrics()
        self.clock = FakeClock()

    def build(self, provider, replies, **config):
        config.setdefault("debug_enabled", True)
        self.client = ScriptedClient(replies)
        self.debug_store = DebugStore(max_logs=10)
        return AssistantOrchestrator(
            client=self.client,
            context_provider=provider,
            config=make_config(**config),
            store=SessionStore(clock=self.clock),
            debug_store=self.debug_store,
        )


class TestConstruction:
    def test_injected_empty_stores_are_kept(self, provider):
        store = SessionStore(clock=FakeClock())
        debug_store = DebugStore(max_logs=3)
        orch = AssistantOrchestrator(
            client=ScriptedClient(DEEP_INTERVENE),
            context_provider=provider,
            config=make_config(),
            store=store,
            debug_store=debug_store,
        )

        assert orch.store is store
        assert orch.policy.store is store
        assert orch.detector.store is store
        assert orch.debug_store is debug_store
        assert orch.context_provider is provider


class TestTurnOutcomes(OrchestratorTestBase):
    def test_fast_path_stop_is_silent(self, provider):
        orch = self.build(provider, {"immediate": FAST_STOP})
        events = asyncio.run(orch.run_turn(SESSION_KEY, NOTES))

        assert events == []
        assert self.client.agents_called() == ["immediate"]
        state = orch.store.get(SESSION_KEY)
        assert state.last_intervention_at is None
        # no deep analysis, baseline stays put
        assert state.baseline_text == ""
        assert get_metrics()["silence_count"] == 1

    def test_deep_path_intervenes_with_question(self, provider):
        orch = self.build(provider, DEEP_INTERVENE)
        events = asyncio.run(orch.run_turn(SESSION_KEY, NOTES))

        assert events == [message_event(COMPOSED_QUESTION, "question")]
        assert self.client.agents_called() == ["immediate", "analyst", "deviation", "decision", "composer"]
        state = orch.store.get(SESSION_KEY)
        assert state.intervention_count == 1
        assert list(state.recent_messages) == [COMPOSED_QUESTION]
        assert state.last_intervention_at == self.clock.now
        assert state.baseline_text == NOTES

        metrics = get_metrics()
        assert metrics["intervene_count"] == 1
        assert metrics["intervention_types"] == {"proactive_question": 1}

    def test_decision_silence_marks_baseline(self, provider):
        orch = self.build(provider, dict(DEEP_INTERVENE, decision=STAY_SILENT))
        events = asyncio.run(orch.run_turn(SESSION_KEY, NOTES))

        assert events == []
        assert "composer" not in self.client.agents_called()
        state = orch.store.get(SESSION_KEY)
        assert state.baseline_text == NOTES
        assert state.last_intervention_at is None

    def test_fast_advice_skips_deep_analysis(self, provider):
        replies = {"immediate": FAST_ADVICE, "decision": INTERVENE, "composer": "Ask how the weekends can be freed up?"}
        orch = self.build(provider, replies)
        events = asyncio.run(orch.run_turn(SESSION_KEY, NOTES))

        assert [e["kind"] for e in events] == ["message"]
        assert self.client.agents_called() == ["immediate", "decision", "composer"]
        assert orch.store.get(SESSION_KEY).baseline_text == ""

    def test_deviation_card_comes_first(self, provider):
        orch = self.build(provider, dict(DEEP_INTERVENE, deviation=DEVIATION_FOUND))
        events = asyncio.run(orch.run_turn(SESSION_KEY, NOTES))

        assert [e["kind"] for e in events] == ["action-card", "message"]
        card = events[0]["card"]
        assert card["kind"] == "profile_deviation"
        assert card["title"] == DEVIATION_FOUND["message"]
        assert card["subtitle"] == DEVIATION_FOUND["recommended_action"]
        assert card["severity"] == "significant"
        assert card["id"].startswith("deviation-")

    def test_deviation_delivered_even_when_silent(self, provider):
        orch = self.build(provider, dict(DEEP_INTERVENE, deviation=DEVIATION_FOUND, decision=STAY_SILENT))
        events = asyncio.run(orch.run_turn(SESSION_KEY, NOTES))

        assert [e["card"]["kind"] for e in events] == ["profile_deviation"]
        assert get_metrics()["results"]["deviation_only"] == 1
        assert orch.store.get(SESSION_KEY).baseline_text == NOTES

    def test_action_card_from_composer(self, provider):
        card = {
            "kind": "add_agreement",
            "title": "Agree on a no-weekend rule",
            "cta": {"label": "Add", "action": "addAgreement", "params": {"employeeId": EMPLOYEE_ID}},
        }
        replies = dict(DEEP_INTERVENE, decision=dict(INTERVENE, intervention_type="action_card"), composer=card)
        orch = self.build(provider, replies)
        events = asyncio.run(orch.run_turn(SESSION_KEY, NOTES))

        assert events[0]["kind"] == "action-card"
        assert events[0]["card"]["kind"] == "add_agreement"
        assert events[0]["card"]["cta"]["action"] == "addAgreement"
        assert list(orch.store.get(SESSION_KEY).recent_messages) == ["Agree on a no-weekend rule"]

    def test_intervene_without_insights_stays_silent(self, provider):
        replies = dict(DEEP_INTERVENE, analyst=dict(ANALYST_ONE_INSIGHT, insights=[]))
        orch = self.build(provider, replies)
        decided = AgentResult(
            DecisionOutput(should_intervene=True, reason="Act now", intervention_type="insight", insight_index=0), 1.0
        )

        with patch.object(orch.decision, "run", AsyncMock(return_value=decided)):
            events = asyncio.run(orch.run_turn(SESSION_KEY, NOTES))

        assert events == []
        assert "composer" not in self.client.agents_called()
        assert get_metrics()["silence_count"] == 1
        assert orch.store.get(SESSION_KEY).baseline_text == NOTES

    def test_intervene_without_insights_keeps_deviation_card(self, provider):
        replies = dict(DEEP_INTERVENE, analyst=dict(ANALYST_ONE_INSIGHT, insights=[]), deviation=DEVIATION_FOUND)
        orch = self.build(provider, replies)
        decided = AgentResult(DecisionOutput(should_intervene=True, reason="Act now"), 1.0)

        with patch.object(orch.decision, "run", AsyncMock(return_value=decided)):
            events = asyncio.run(orch.run_turn(SESSION_KEY, NOTES))

        assert [e["card"]["kind"] for e in events] == ["profile_deviation"]
        assert "composer" not in self.client.agents_called()

    def test_missing_employee_is_an_error_turn(self, provider):
        orch = self.build(provider, DEEP_INTERVENE)
        listener = RecordingListener()
        events = asyncio.run(orch.handle_input(f"{MEETING_ID}:ghost", EXPLICIT_MESSAGE, NOTES, listener))

        assert events == []
        assert self.client.calls == []
        assert get_metrics()["results"]["error"] == 1
        assert [p["stage"] for p in listener.logs] == ["error"]
        assert listener.finished == [[]]


class TestSurveyCard(OrchestratorTestBase):
    def test_thin_profile_offers_survey_once(self, provider):
        orch = self.build(provider, DEEP_INTERVENE, survey_richness_chars=1000)

        first = asyncio.run(orch.run_turn(SESSION_KEY, NOTES))
        assert [e["kind"] for e in first] == ["message", "action-card"]
        survey = first[1]["card"]
        assert survey["id"] == f"survey-{EMPLOYEE_ID}"
        assert survey["kind"] == "start_survey"
        assert survey["cta"] == {"label": "Open survey", "action": "openSurvey", "params": {"employeeId": EMPLOYEE_ID}}

        second = asyncio.run(orch.run_turn(SESSION_KEY, MORE_NOTES))
        assert [e["kind"] for e in second] == ["message"]

    def test_no_survey_on_silent_turn(self, provider):
        orch = self.build(provider, dict(DEEP_INTERVENE, decision=STAY_SILENT), survey_richness_chars=1000)
        assert asyncio.run(orch.run_turn(SESSION_KEY, NOTES)) == []
        assert orch.policy.was_survey_offered(SESSION_KEY) is False

    def test_rich_profile_gets_no_survey(self, provider):
        orch = self.build(provider, DEEP_INTERVENE)
        events = asyncio.run(orch.run_turn(SESSION_KEY, NOTES))
        assert [e["kind"] for e in events] == ["message"]


class TestGates(OrchestratorTestBase):
    def test_throttle_blocks_until_interval_passes(self, provider):
        orch = self.build(provider, DEEP_INTERVENE, min_interval_ms=60000)
        assert asyncio.run(orch.run_turn(SESSION_KEY, NOTES))
        calls_after_first = len(self.client.calls)

        assert asyncio.run(orch.run_turn(SESSION_KEY, MORE_NOTES)) == []
        assert len(self.client.calls) == calls_after_first
        assert get_metrics()["results"]["throttled"] == 1

        self.clock.advance(61)
        assert asyncio.run(orch.run_turn(SESSION_KEY, MORE_NOTES))

    def test_silent_turn_does_not_consume_throttle(self, provider):
        replies = dict(DEEP_INTERVENE, immediate=[FAST_STOP, FAST_NEEDS_DEEP])
        orch = self.build(provider, replies, min_interval_ms=60000)
        assert asyncio.run(orch.run_turn(SESSION_KEY, NOTES)) == []
        assert asyncio.run(orch.run_turn(SESSION_KEY, NOTES, explicit=True))

    def test_not_enough_new_words(self, provider):
        orch = self.build(provider, dict(DEEP_INTERVENE, decision=STAY_SILENT))
        asyncio.run(orch.run_turn(SESSION_KEY, NOTES))
        calls = len(self.client.calls)

        assert asyncio.run(orch.run_turn(SESSION_KEY, NOTES + " ok")) == []
        assert len(self.client.calls) == calls

    def test_explicit_message_bypasses_word_gate(self, provider):
        orch = self.build(provider, {"immediate": FAST_ADVICE, "decision": INTERVENE, "composer": "Ask it gently?"})
        orch.store.get_or_create(SESSION_KEY).last_text = NOTES

        events = asyncio.run(orch.run_turn(SESSION_KEY, "How do I raise burnout?", explicit=True))

        assert events == [message_event("Ask it gently?", "question")]
        prompt = self.client.calls[0][1].prompt
        assert NOTES in prompt
        assert "Manager asks: How do I raise burnout?" in prompt

    def test_explicit_turn_baseline_is_the_notes(self, provider):
        orch = self.build(provider, DEEP_INTERVENE)
        orch.store.get_or_create(SESSION_KEY).last_text = NOTES
        asyncio.run(orch.run_turn(SESSION_KEY, "What should I ask next?", explicit=True))
        assert orch.store.get(SESSION_KEY).baseline_text == NOTES


class TestCancellation(OrchestratorTestBase):
    def test_new_turn_supersedes_running_one(self, provider):
        replies = dict(DEEP_INTERVENE, immediate=[HANG, FAST_NEEDS_DEEP])
        orch = self.build(provider, replies)

        async def scenario():
            first = asyncio.create_task(orch.run_turn(SESSION_KEY, NOTES, explicit=True))
            await asyncio.sleep(0.01)
            second = await orch.run_turn(SESSION_KEY, "Anything to ask?", explicit=True)
            return await first, second

        first, second = asyncio.run(scenario())
        assert first == []
        assert second == [message_event(COMPOSED_QUESTION, "question")]
        assert get_metrics()["results"]["cancelled"] == 1

    def test_superseded_turn_does_not_undo_newer_stamp(self, provider):
        replies = dict(DEEP_INTERVENE, immediate=[HANG, FAST_NEEDS_DEEP])
        orch = self.build(provider, replies, min_interval_ms=1000)

        async def scenario():
            first = asyncio.create_task(orch.run_turn(SESSION_KEY, NOTES, explicit=True))
            await asyncio.sleep(0.01)
            self.clock.advance(2)
            second = asyncio.create_task(orch.run_turn(SESSION_KEY, "Anything to ask?", explicit=True))
            return await asyncio.gather(first, second)

        first, second = asyncio.run(scenario())
        assert first == []
        assert second == [message_event(COMPOSED_QUESTION, "question")]
        state = orch.store.get(SESSION_KEY)
        assert state.last_intervention_at == self.clock.now

        # the intervention just sent still throttles the next turn
        calls = len(self.client.calls)
        assert asyncio.run(orch.run_turn(SESSION_KEY, "And now?", explicit=True)) == []
        assert len(self.client.calls) == calls
        assert get_metrics()["results"]["throttled"] == 1

    def test_pipeline_timeout(self, provider):
        orch = self.build(provider, dict(DEEP_INTERVENE, analyst=HANG), pipeline_timeout_ms=50)
        logs = []

        async def on_log(payload):
            logs.append(payload)

        events = asyncio.run(orch.run_turn(SESSION_KEY, NOTES, on_log=on_log))

        assert events == []
        assert "decision" not in self.client.agents_called()
        assert [p["stage"] for p in logs] == ["timeout"]
        assert get_metrics()["results"]["cancelled"] == 1
        state = orch.store.get(SESSION_KEY)
        assert state.active_token is None
        assert state.baseline_text == ""

    def test_detach_cancels_run_but_keeps_state(self, provider):
        orch = self.build(provider, dict(DEEP_INTERVENE, analyst=HANG))

        async def scenario():
            task = asyncio.create_task(orch.run_turn(SESSION_KEY, NOTES))
            await asyncio.sleep(0.01)
            orch.detach(SESSION_KEY)
            return await task

        assert asyncio.run(scenario()) == []
        assert SESSION_KEY in orch.store

    def test_clear_session_drops_state(self, provider):
        orch = self.build(provider, dict(DEEP_INTERVENE, analyst=HANG))

        async def scenario():
            task = asyncio.create_task(orch.run_turn(SESSION_KEY, NOTES))
            await asyncio.sleep(0.01)
            orch.clear_session(SESSION_KEY)
            orch.clear_session(SESSION_KEY)
            return await task

        assert asyncio.run(scenario()) == []
        assert SESSION_KEY not in orch.store


class TestHandleInput(OrchestratorTestBase):
    def test_unknown_kind(self, provider):
        orch = self.build(provider, DEEP_INTERVENE)
        with pytest.raises(ValidationError):
            asyncio.run(orch.handle_input(SESSION_KEY, "keystroke", NOTES))

    @pytest.mark.parametrize("key", ["", "no-separator", ":e-1", "m-1:"])
    def test_invalid_session_key(self, provider, key):
        orch = self.build(provider, DEEP_INTERVENE)
        with pytest.raises(ValidationError):
            asyncio.run(orch.handle_input(key, EXPLICIT_MESSAGE, NOTES))

    def test_text_change_with_too_little_text(self, provider):
        orch = self.build(provider, DEEP_INTERVENE, debounce_ms=10)
        listener = RecordingListener()

        async def scenario():
            result = await orch.handle_input(SESSION_KEY, TEXT_CHANGED, "just three words", listener)
            await asyncio.sleep(0.05)
            return result

        assert asyncio.run(scenario()) == []
        assert listener.started == []
        check = [p for p in listener.logs if p["stage"] == "content_check"][0]
        assert check["message"].startswith("Too little text")
        assert self.client.calls == []

    def test_text_change_runs_turn_after_pause(self, provider):
        orch = self.build(provider, DEEP_INTERVENE, debounce_ms=10)
        listener = RecordingListener()

        async def scenario():
            await orch.handle_input(SESSION_KEY, TEXT_CHANGED, NOTES[:20], listener)
            await orch.handle_input(SESSION_KEY, TEXT_CHANGED, NOTES, listener)
            await asyncio.sleep(0.1)

        asyncio.run(scenario())
        assert listener.started == [SESSION_KEY]
        assert listener.finished == [[message_event(COMPOSED_QUESTION, "question")]]
        assert self.client.agents_called().count("immediate") == 1

    def test_explicit_message_returns_events(self, provider):
        orch = self.build(provider, DEEP_INTERVENE)
        listener = RecordingListener()
        events = asyncio.run(orch.handle_input(SESSION_KEY, EXPLICIT_MESSAGE, "What now?", listener))
        assert events == [message_event(COMPOSED_QUESTION, "question")]
        assert listener.finished == [events]


class TestDebugTrace(OrchestratorTestBase):
    def test_trace_recorded(self, provider):
        orch = self.build(provider, DEEP_INTERVENE)
        asyncio.run(orch.run_turn(SESSION_KEY, NOTES))

        assert len(self.debug_store) == 1
        log = self.debug_store.recent(1)[0]
        summary = log.summary()
        assert summary["session_key"] == SESSION_KEY
        assert summary["decision"] == "message"
        assert summary["agents"] == ["immediate", "analyst", "deviation", "decision", "composer"]
        assert log.input["employee_name"] == "Alex Kim"
        assert log.output["messages"] == [message_event(COMPOSED_QUESTION, "question")]

    def test_trace_disabled(self, provider):
        orch = self.build(provider, DEEP_INTERVENE, debug_enabled=False)
        asyncio.run(orch.run_turn(SESSION_KEY, NOTES))
        assert len(self.debug_store) == 0
