"""
Co-pilot Prompts - system prompts and user prompt builders per agent

Contains:
- IMMEDIATE_SYSTEM_PROMPT / build_immediate_prompt(): fast-path analysis of the latest notes
- ANALYST_SYSTEM_PROMPT / build_analyst_prompt(): deep analysis with history and commitments
- DEVIATION_SYSTEM_PROMPT / build_deviation_prompt(): behavior vs profile/history
- DECISION_SYSTEM_PROMPT / build_decision_prompt(): speak or stay silent
- COMPOSER_SYSTEM_PROMPT / build_composer_prompt(): the words the manager sees
"""

from typing import List, Optional

from services.context_provider import AgreementDetail, EmployeeInfo, MeetingSummary

from .types import (
    ComposerInput,
    DecisionInput,
    DeviationInput,
    AnalystInput,
    ImmediateInput,
)

SECTION = "=" * 60

NOTES_PREVIEW_CHARS = 4000
PROFILE_PREVIEW_CHARS = 1500
HISTORY_NOTES_CHARS = 400


def _clip(text: Optional[str], limit: int) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _employee_line(employee: EmployeeInfo) -> str:
    role = "/".join(p for p in (employee.position, employee.team) if p)
    return f"{employee.name} ({role})" if role else employee.name


def _format_history(meetings: List[MeetingSummary]) -> str:
    if not meetings:
        return "No previous meetings."
    lines = []
    for m in meetings:
        rating = f", satisfaction {m.satisfaction}/10" if m.satisfaction is not None else ""
        lines.append(f"- {m.date.isoformat()}{rating}: {_clip(m.notes, HISTORY_NOTES_CHARS) or '(no notes)'}")
    return "\n".join(lines)


def _format_agreements(details: List[AgreementDetail]) -> str:
    if not details:
        return "No open commitments."
    lines = []
    for a in details:
        owner = "employee" if a.responsible_type == "employee_task" else "manager"
        due = f", due {a.due_date}" if a.due_date else ""
        overdue = " OVERDUE" if a.is_overdue else ""
        lines.append(f"- [{a.weight}] {a.title} (owner: {owner}, {a.days_ago} days ago{due}){overdue}")
    return "\n".join(lines)


# =============================================================================
# FAST-PATH ANALYST
# =============================================================================

IMMEDIATE_SYSTEM_PROMPT = f"""You assist a manager during a live one-on-one meeting.
Read the manager's latest notes and decide whether a concrete, useful piece of
advice can be given right now from the notes alone, without meeting history.

Give advice only when the notes contain a clear signal: a risk, a conflict,
an unusual reaction, an obvious question worth asking. Otherwise say so and
state whether a deeper analysis with history is worth running.

{SECTION}
RESPONSE FORMAT (JSON only):
{SECTION}
{{
  "has_actionable_advice": true | false,
  "needs_deep_analysis": true | false,
  "reason": "why",
  "situation_summary": "one sentence",
  "insight": {{
    "type": "behavioral_tactic | psychological_state | hidden_need | relationship_dynamic | risk | positive_shift",
    "interpretation": "what is really going on",
    "confidence": 0.0-1.0,
    "evidence": ["quote from notes"],
    "relevance": "high | medium | low"
  }}
}}
Omit "insight" when has_actionable_advice is false."""


def build_immediate_prompt(data: ImmediateInput) -> str:
    profile = _clip(data.characteristic, PROFILE_PREVIEW_CHARS) or "No profile."
    return (
        f"EMPLOYEE: {_employee_line(data.employee)}\n\n"
        f"PROFILE:\n{profile}\n\n"
        f"MEETING NOTES:\n{_clip(data.notes, NOTES_PREVIEW_CHARS)}"
    )


# =============================================================================
# DEEP ANALYST
# =============================================================================

ANALYST_SYSTEM_PROMPT = f"""You are an experienced coach analysing a live one-on-one meeting.
Use the notes, the employee profile, previous meetings and open commitments to
find non-obvious insights: behavioral tactics, psychological state, hidden
needs, relationship dynamics, risks and positive shifts. Recent commitments
(weight "high") matter more than old ones.

Return at most 5 insights, most important first. Skip anything you are not
reasonably confident about.

{SECTION}
RESPONSE FORMAT (JSON only):
{SECTION}
{{
  "insights": [
    {{
      "type": "behavioral_tactic | psychological_state | hidden_need | relationship_dynamic | risk | positive_shift | pattern | opportunity | contradiction | trend",
      "interpretation": "what it means",
      "description": "what was observed",
      "confidence": 0.0-1.0,
      "evidence": ["quote"],
      "profile_connection": "link to the profile, if any",
      "relevance": "high | medium | low"
    }}
  ],
  "employee_state": {{
    "sentiment": "positive | neutral | negative | hostile | unknown",
    "engagement_level": "high | medium | low | disengaged",
    "interaction_mode": "constructive | defensive | aggressive | manipulative | withdrawn",
    "key_topics": ["topic"]
  }},
  "context_summary": "two sentences"
}}"""


def build_analyst_prompt(data: AnalystInput) -> str:
    profile = _clip(data.characteristic, PROFILE_PREVIEW_CHARS) or "No profile."
    return (
        f"EMPLOYEE: {_employee_line(data.employee)}\n\n"
        f"PROFILE:\n{profile}\n\n"
        f"PREVIOUS MEETINGS:\n{_format_history(data.previous_meetings)}\n\n"
        f"OPEN COMMITMENTS:\n{_format_agreements(data.agreement_details)}\n\n"
        f"CURRENT MEETING NOTES:\n{_clip(data.notes, NOTES_PREVIEW_CHARS)}"
    )


# =============================================================================
# PROFILE DEVIATION
# =============================================================================

DEVIATION_SYSTEM_PROMPT = f"""Compare the employee's behavior in this meeting with their
profile and with previous meetings. Report only significant deviations: a
change a manager should notice now. Ordinary day-to-day variation is not a
deviation.

{SECTION}
RESPONSE FORMAT (JSON only):
{SECTION}
{{
  "has_deviation": true | false,
  "deviation_type": "profile_mismatch | history_anomaly | both",
  "severity": "critical | significant | minor",
  "message": "short note for the manager",
  "explanation": "why",
  "recommended_action": "what to do now"
}}"""


def build_deviation_prompt(data: DeviationInput) -> str:
    profile = _clip(data.profile, PROFILE_PREVIEW_CHARS) or "No profile."
    topics = ", ".join(data.current_topics) or "none"
    return (
        f"EMPLOYEE: {_employee_line(data.employee)}\n\n"
        f"CURRENT BEHAVIOR:\n{_clip(data.current_behavior, NOTES_PREVIEW_CHARS)}\n"
        f"Sentiment: {data.current_sentiment}; mode: {data.current_interaction_mode or 'unknown'}; topics: {topics}\n\n"
        f"PROFILE:\n{profile}\n\n"
        f"PREVIOUS MEETINGS:\n{_format_history(data.previous_meetings)}"
    )


# =============================================================================
# DECISION
# =============================================================================

DECISION_SYSTEM_PROMPT = f"""You decide whether the meeting assistant should say something
to the manager right now, or stay silent.

Stay silent when:
1. You said essentially the same thing recently (see recent messages)
2. The notes are nearly empty
3. Every insight is low-confidence

Speak when:
1. There is a risk: resignation, conflict, burnout (priority high, warning)
2. Notable behavior: manipulation, aggression, withdrawal (priority high, insight)
3. A non-obvious interpretation is available (priority medium, insight)
4. A concrete question would help (priority medium, proactive_question)
5. There is an opportunity to improve the situation (priority low, insight)

{SECTION}
RESPONSE FORMAT (JSON only):
{SECTION}
{{
  "should_intervene": true | false,
  "reason": "why",
  "intervention_type": "warning | insight | proactive_question | action_card | clarification",
  "priority": "high | medium | low",
  "insight_index": 0
}}"""


def build_decision_prompt(data: DecisionInput) -> str:
    analysis = data.analysis
    if analysis.insights:
        insights = "\n".join(
            f"[{i}] type={ins.type}, confidence={ins.confidence:.2f}, relevance={ins.relevance}: \"{ins.text}\""
            + (f" | profile: {ins.profile_connection}" if ins.profile_connection else "")
            for i, ins in enumerate(analysis.insights)
        )
    else:
        insights = "No significant insights."

    state = analysis.employee_state
    state_line = f"sentiment={state.sentiment}, engagement={state.engagement_level}"
    if state.key_topics:
        state_line += f", topics={', '.join(state.key_topics)}"

    recent = (
        "\n".join(f"[{i}] \"{msg}\"" for i, msg in enumerate(data.recent_assistant_messages))
        if data.recent_assistant_messages
        else "No messages yet this session."
    )

    return (
        f"MEETING CONTEXT:\n{analysis.context_summary or '(none)'}\n\n"
        f"INSIGHTS:\n{insights}\n\n"
        f"EMPLOYEE STATE: {state_line}\n\n"
        f"SESSION: {data.context.meeting_duration_minutes} min elapsed, "
        f"{data.context.messages_sent_this_session} messages sent\n\n"
        f"RECENT ASSISTANT MESSAGES:\n{recent}"
    )


# =============================================================================
# COMPOSER
# =============================================================================

COMPOSER_SYSTEM_PROMPT = """You write the message a manager reads during a live meeting.
Be brief and concrete: one or two sentences, or a short list. Address the
manager directly. No greetings, no preamble.

For intervention_type "proactive_question": suggest one question to ask the employee.
For intervention_type "warning": name the risk and what to do about it.
For intervention_type "action_card": answer with JSON only:
{"kind": "start_survey | add_agreement | ask_followup", "title": "...", "subtitle": "...",
 "cta": {"label": "...", "action": "...", "params": {}}}
Otherwise answer with plain text."""


def build_composer_prompt(data: ComposerInput) -> str:
    insight = data.insight
    evidence = "; ".join(insight.evidence) if insight.evidence else "none"
    return (
        f"INTERVENTION TYPE: {data.intervention_type}\n"
        f"EMPLOYEE: {data.employee_name}\n\n"
        f"INSIGHT ({insight.type}, confidence {insight.confidence:.2f}):\n{insight.text}\n"
        f"Evidence: {evidence}\n\n"
        f"CONTEXT:\n{data.context_summary or '(none)'}"
    )
