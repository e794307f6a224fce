"""
Co-pilot Pipeline Orchestrator

Turns notes updates and explicit manager messages into zero or more
outbound items:

    input -> pause detector -> throttle -> analysis gate
          -> fast-path analyst -> (deep analyst -> deviation) -> decision
          -> composer -> outbound events

Also manages:
- One in-flight run per session (a new run cancels the previous one)
- The total pipeline budget (expiry cancels the run's token)
- Baseline advancement after a completed deep analysis
- The one-shot survey card for thin profiles
- Debug traces and metrics per turn
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import runtime_config
from errors import ValidationError, log_error
from logging_config import log_message_in
from services.context_provider import AssistantContext, ContextProvider, get_context_provider
from services.llm_client import get_text_client
from utils.cancellation import CancellationToken

from .agents import AnalystAgent, ComposerAgent, DecisionAgent, ImmediateAnalystAgent, ProfileDeviationAgent
from .agents.types import (
    AnalystInput,
    AnalystOutput,
    ComposerInput,
    ComposerOutput,
    DecisionInput,
    DeviationInput,
    DeviationOutput,
    ImmediateInput,
    SessionContext,
)
from .debug_store import DebugStore, get_debug_store
from .pipeline_log import LogCallback, PipelineLogger
from .policies import SessionPolicy
from .session import SessionStore, parse_session_key
from .typing_detector import ContentCheck, TypingDetector

logger = logging.getLogger(__name__)

TEXT_CHANGED = "text-changed"
EXPLICIT_MESSAGE = "explicit-message"
INPUT_KINDS = (TEXT_CHANGED, EXPLICIT_MESSAGE)

PIPELINE_TIMEOUT_REASON = "pipeline timeout"
RECENT_MESSAGES_FOR_DECISION = 5


class TurnListener:
    """Receives turn lifecycle callbacks. Override what you need."""

    async def turn_started(self, key: str) -> None:
        pass

    async def turn_finished(self, key: str, events: List[dict]) -> None:
        pass

    async def pipeline_log(self, payload: dict) -> None:
        pass


@dataclass
class TurnOutcome:
    events: List[dict] = field(default_factory=list)
    result: str = "silence"
    reason: Optional[str] = None
    intervention_type: Optional[str] = None
    deep_ran: bool = False


def message_event(text: str, message_format: str = "plain") -> dict:
    return {"kind": "message", "text": text, "format": message_format}


def card_event(card: Dict[str, Any]) -> dict:
    return {"kind": "action-card", "card": card}


class AssistantOrchestrator:
    """Runs the co-pilot pipeline per session.

    Handles:
    - Routing inputs (text-changed through the pause detector, explicit messages directly)
    - Throttle and analysis gates
    - Agent sequencing with short-circuits
    - Cancellation and timeouts
    """

    def __init__(
        self,
        client=None,
        context_provider: Optional[ContextProvider] = None,
        config=None,
        store: Optional[SessionStore] = None,
        debug_store: Optional[DebugStore] = None,
    ):
        """
        Args:
            client: Text generation client (defaults to the singleton)
            context_provider: Meeting context reads (defaults to the process-wide provider)
            config: RuntimeConfig instance for gates and budgets
            store: Session store (tests inject one with a fake clock)
            debug_store: Where per-turn traces go
        """
        self.config = config or runtime_config
        # stores define __len__, so an empty one is falsy: compare with None
        self.store = store if store is not None else SessionStore(recent_messages_max=self.config.recent_messages_max)
        self.policy = SessionPolicy(self.store, self.config)
        self.detector = TypingDetector(self.store, self.config)
        self.context_provider = context_provider if context_provider is not None else get_context_provider()
        self.debug_store = debug_store if debug_store is not None else get_debug_store()

        client = client or get_text_client()
        self.immediate = ImmediateAnalystAgent(client, self.config)
        self.analyst = AnalystAgent(client, self.config)
        self.deviation = ProfileDeviationAgent(client, self.config)
        self.decision = DecisionAgent(client, self.config)
        self.composer = ComposerAgent(client, self.config)

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    async def handle_input(
        self, key: str, kind: str, text: str, listener: Optional[TurnListener] = None
    ) -> List[dict]:
        """Handle one inbound event.

        Explicit messages run a turn now and return its events. Notes updates
        only (re)arm the pause timer and return []; the turn, if any, reports
        through the listener.

        Raises:
            ValidationError: malformed session key or unknown kind
        """
        parse_session_key(key)
        log_message_in(logger, text or "", session=key, kind=kind)

        if kind == EXPLICIT_MESSAGE:
            return await self._run_with_listener(key, text, listener, explicit=True)

        if kind == TEXT_CHANGED:

            async def on_pause(notes: str, check: ContentCheck) -> None:
                await self._run_with_listener(key, notes, listener, check=check)

            on_log = listener.pipeline_log if listener is not None else None
            self.detector.on_text_change(key, text, on_pause, on_log=on_log)
            return []

        raise ValidationError(
            "Unknown input kind",
            parameter="kind",
            expected=" | ".join(INPUT_KINDS),
            received=str(kind),
        )

    def clear_session(self, key: str) -> None:
        """Drop all state for a session and stop its timer and run. Idempotent."""
        self.detector.clear_typing_session(key)
        self.policy.clear_session(key)

    def detach(self, key: str) -> None:
        """Stop the session's timer and in-flight run but keep its state (client went away)."""
        self.detector.clear_typing_session(key)
        state = self.store.get(key)
        if state is not None and state.active_token is not None:
            state.active_token.cancel("client detached")

    def shutdown(self) -> None:
        for key in self.store:
            self.clear_session(key)

    async def _run_with_listener(
        self,
        key: str,
        text: str,
        listener: Optional[TurnListener],
        explicit: bool = False,
        check: Optional[ContentCheck] = None,
    ) -> List[dict]:
        if listener is not None:
            await listener.turn_started(key)
        events: List[dict] = []
        try:
            events = await self.run_turn(
                key,
                text,
                explicit=explicit,
                check=check,
                on_log=listener.pipeline_log if listener is not None else None,
            )
        finally:
            if listener is not None:
                await listener.turn_finished(key, events)
        return events

    # =========================================================================
    # TURN
    # =========================================================================

    async def run_turn(
        self,
        key: str,
        text: str,
        explicit: bool = False,
        check: Optional[ContentCheck] = None,
        on_log: Optional[LogCallback] = None,
    ) -> List[dict]:
        """Run one pipeline turn and return its outbound events (possibly empty)."""
        meeting_id, employee_id = parse_session_key(key)
        plog = PipelineLogger(key, on_log)

        stamp = self.policy.acquire_response(key)
        if stamp is None:
            await plog.stage("throttle", f"Throttled (min interval {self.config.min_interval_ms}ms)")
            plog.finish("throttled")
            return []

        state = self.store.get_or_create(key)
        if explicit:
            notes = f"{state.last_text}\n\nManager asks: {text}" if state.last_text.strip() else text
        else:
            notes = text
            gate = self.policy.should_analyze(
                key, text, min_new_words=0 if check is not None and check.deletion_detected else None
            )
            if not gate.allow:
                self.policy.release_response(stamp)
                await plog.stage("gate", gate.reason)
                plog.finish("throttled")
                return []

        # One run per session: supersede whatever is in flight
        if state.active_token is not None:
            state.active_token.cancel("superseded")
        token = CancellationToken(label=key)
        state.active_token = token

        loop = asyncio.get_running_loop()
        timeout_handle = loop.call_later(self.config.pipeline_timeout_ms / 1000, self._expire, token, key)

        trace = None
        if self.config.debug_enabled:
            trace = self.debug_store.create(
                key,
                {
                    "meeting_id": meeting_id,
                    "employee_id": employee_id,
                    "kind": EXPLICIT_MESSAGE if explicit else TEXT_CHANGED,
                    "notes": notes,
                    "content_check": check.to_dict() if check is not None else None,
                },
            )

        outcome = TurnOutcome()
        try:
            outcome = await self._run_stages(key, meeting_id, employee_id, notes, token, plog, trace)
        except Exception as e:
            log_error(logger, e, context=f"turn {key}")
            await plog.stage("error", f"Pipeline failed: {e}", level="error")
            outcome = TurnOutcome(result="error", reason=str(e))
        finally:
            timeout_handle.cancel()
            current = self.store.get(key)
            if current is not None and current.active_token is token:
                current.active_token = None

        if token.cancelled:
            if token.reason == PIPELINE_TIMEOUT_REASON:
                await plog.stage("timeout", "Pipeline timed out", level="error")
            outcome = TurnOutcome(result="cancelled", reason=token.reason, deep_ran=outcome.deep_ran)

        if outcome.events:
            self.policy.commit_response(stamp)
            self._record_sent(key, outcome.events)
        else:
            self.policy.release_response(stamp)

        current = self.store.get(key)
        if current is not None and outcome.deep_ran and outcome.result in ("silence", "message", "deviation_only"):
            # explicit turns advance to the notes, never to the manager's question
            self.detector.mark_baseline(key, current.last_text if explicit else text)

        plog.finish(outcome.result, len(outcome.events), outcome.intervention_type)
        if trace is not None:
            trace.set_output(outcome.result, outcome.events, outcome.reason, plog.elapsed_ms)
        return outcome.events

    def _expire(self, token: CancellationToken, key: str) -> None:
        if token.cancel(PIPELINE_TIMEOUT_REASON):
            logger.warning(f"[{key}] pipeline timeout after {self.config.pipeline_timeout_ms}ms")

    def _record_sent(self, key: str, events: List[dict]) -> None:
        state = self.store.get(key)
        if state is None:
            return
        for event in events:
            if event["kind"] == "message":
                state.record_message(event["text"])
            else:
                state.record_message(event["card"].get("title", ""))

    async def _run_stages(
        self,
        key: str,
        meeting_id: str,
        employee_id: str,
        notes: str,
        token: CancellationToken,
        plog: PipelineLogger,
        trace,
    ) -> TurnOutcome:
        context = await self.context_provider.get_context(
            meeting_id, employee_id, history_limit=self.config.history_meetings_limit
        )
        if trace is not None:
            trace.input["employee_name"] = context.employee.name
            trace.input["characteristic"] = context.characteristic
        if token.cancelled:
            return TurnOutcome(result="cancelled")
        employee = context.employee

        # Stage 1: fast path
        fast = await self.immediate.run(ImmediateInput(notes, employee, context.characteristic), token, trace)
        await plog.agent(
            "immediate",
            fast.duration_ms,
            f"advice={fast.output.has_actionable_advice} deep={fast.output.needs_deep_analysis}: {fast.output.reason}",
        )
        if token.cancelled:
            return TurnOutcome(result="cancelled")
        if not fast.output.has_actionable_advice and not fast.output.needs_deep_analysis:
            return TurnOutcome(result="silence", reason=fast.output.reason)

        deviation: Optional[DeviationOutput] = None
        deep_ran = False
        if fast.output.has_actionable_advice:
            analysis = AnalystOutput(insights=[fast.output.insight], context_summary=fast.output.situation_summary)
        else:
            # Stage 2: deep analysis
            deep = await self.analyst.run(
                AnalystInput(
                    notes=notes,
                    employee=employee,
                    characteristic=context.characteristic,
                    previous_meetings=context.previous_meetings,
                    agreement_details=context.agreement_details,
                ),
                token,
                trace,
            )
            await plog.agent("analyst", deep.duration_ms, f"{len(deep.output.insights)} insights")
            if token.cancelled:
                return TurnOutcome(result="cancelled")
            analysis = deep.output
            deep_ran = True

            # Stage 3: deviation from profile/history
            state = analysis.employee_state
            dev = await self.deviation.run(
                DeviationInput(
                    current_behavior=notes,
                    employee=employee,
                    current_topics=state.key_topics,
                    current_sentiment=state.sentiment,
                    current_interaction_mode=state.interaction_mode,
                    profile=context.characteristic,
                    previous_meetings=context.previous_meetings,
                ),
                token,
                trace,
            )
            await plog.agent("deviation", dev.duration_ms, dev.output.explanation)
            if token.cancelled:
                return TurnOutcome(result="cancelled", deep_ran=deep_ran)
            if dev.output.has_deviation:
                deviation = dev.output

        # Stage 4: decision
        session = self.store.get_or_create(key)
        recent = list(session.recent_messages)[-RECENT_MESSAGES_FOR_DECISION:]
        decided = await self.decision.run(
            DecisionInput(
                analysis=analysis,
                context=SessionContext(
                    meeting_duration_minutes=session.minutes_elapsed(self.store.clock()),
                    messages_sent_this_session=session.intervention_count,
                ),
                recent_assistant_messages=recent,
            ),
            token,
            trace,
        )
        decision = decided.output
        await plog.agent("decision", decided.duration_ms, f"intervene={decision.should_intervene}: {decision.reason}")
        if token.cancelled:
            return TurnOutcome(result="cancelled", deep_ran=deep_ran)

        outcome = TurnOutcome(deep_ran=deep_ran, reason=decision.reason)
        if deviation is not None:
            outcome.events.append(card_event(self._deviation_card(deviation)))

        intervene = decision.should_intervene
        if intervene and not analysis.insights:
            logger.warning(f"[{key}] decision wants to intervene but there is no insight to compose from")
            outcome.reason = "No insights to act on"
            intervene = False

        if not intervene:
            outcome.result = "deviation_only" if outcome.events else "silence"
        else:
            # Stage 5: composition
            index = decision.insight_index or 0
            insight = analysis.insights[index] if index < len(analysis.insights) else analysis.insights[0]
            composed = await self.composer.run(
                ComposerInput(
                    intervention_type=decision.intervention_type or "insight",
                    insight=insight,
                    employee_name=employee.name,
                    context_summary=analysis.context_summary,
                ),
                token,
                trace,
            )
            await plog.agent("composer", composed.duration_ms, "composed")
            if token.cancelled:
                return TurnOutcome(result="cancelled", deep_ran=deep_ran)
            outcome.events.append(self._composed_event(composed.output))
            outcome.result = "message"
            outcome.intervention_type = decision.intervention_type

        if outcome.events and not self.policy.was_survey_offered(key) and self.should_suggest_survey(context):
            outcome.events.append(card_event(self._survey_card(employee_id)))
            self.policy.mark_survey_offered(key)

        return outcome

    # =========================================================================
    # OUTBOUND ITEMS
    # =========================================================================

    def should_suggest_survey(self, context: AssistantContext) -> bool:
        """A missing or thin profile is worth enriching."""
        text = (context.characteristic or "").strip()
        return len(text) < self.config.survey_richness_chars

    @staticmethod
    def _survey_card(employee_id: str) -> Dict[str, Any]:
        return {
            "id": f"survey-{employee_id}",
            "kind": "start_survey",
            "title": "Suggest a profile survey",
            "subtitle": "Helps enrich the employee profile",
            "cta": {"label": "Open survey", "action": "openSurvey", "params": {"employeeId": employee_id}},
        }

    @staticmethod
    def _deviation_card(deviation: DeviationOutput) -> Dict[str, Any]:
        card = {
            "id": f"deviation-{uuid.uuid4().hex[:8]}",
            "kind": "profile_deviation",
            "title": deviation.message,
            "severity": deviation.severity,
            "deviation_type": deviation.deviation_type,
        }
        if deviation.recommended_action:
            card["subtitle"] = deviation.recommended_action
        return card

    @staticmethod
    def _composed_event(output: ComposerOutput) -> dict:
        if output.action_card is not None:
            card = output.action_card
            payload = {"id": f"{card.kind}-{uuid.uuid4().hex[:8]}", "kind": card.kind, "title": card.title, "cta": card.cta}
            if card.subtitle:
                payload["subtitle"] = card.subtitle
            return card_event(payload)
        return message_event(output.message.text, output.message.format)


_orchestrator: Optional[AssistantOrchestrator] = None


def get_orchestrator() -> AssistantOrchestrator:
    """Get the singleton orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = AssistantOrchestrator()
    return _orchestrator
