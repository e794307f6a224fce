"""
Agent input/output types.

Every output dataclass has a least-assertive default, and the allowed
values for each enum-like field are listed here so agents can whitelist
model output field by field.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

from services.context_provider import AgreementDetail, EmployeeInfo, MeetingSummary

T = TypeVar("T")

INSIGHT_TYPES = (
    "behavioral_tactic",
    "psychological_state",
    "hidden_need",
    "relationship_dynamic",
    "risk",
    "positive_shift",
    "pattern",
    "opportunity",
    "contradiction",
    "trend",
)
RELEVANCE_LEVELS = ("high", "medium", "low")
PRIORITY_LEVELS = ("high", "medium", "low")
SENTIMENTS = ("positive", "neutral", "negative", "hostile", "unknown")
ENGAGEMENT_LEVELS = ("high", "medium", "low", "disengaged")
INTERACTION_MODES = ("constructive", "defensive", "aggressive", "manipulative", "withdrawn")
INTERVENTION_TYPES = ("proactive_question", "warning", "insight", "action_card", "clarification")
DEVIATION_TYPES = ("profile_mismatch", "history_anomaly", "both")
DEVIATION_SEVERITIES = ("critical", "significant", "minor")
MESSAGE_FORMATS = ("plain", "list", "question")
ACTION_CARD_KINDS = ("start_survey", "add_agreement", "ask_followup")


@dataclass
class AgentResult(Generic[T]):
    """What every agent returns: a schema-valid output and how long it took."""

    output: T
    duration_ms: float


# =============================================================================
# SHARED
# =============================================================================


@dataclass
class Insight:
    type: str = "pattern"
    interpretation: str = ""
    description: str = ""
    confidence: float = 0.5
    evidence: List[str] = field(default_factory=list)
    relevance: str = "medium"
    profile_connection: Optional[str] = None

    @property
    def text(self) -> str:
        return self.interpretation or self.description


@dataclass
class EmployeeState:
    sentiment: str = "unknown"
    engagement_level: str = "medium"
    interaction_mode: Optional[str] = None
    key_topics: List[str] = field(default_factory=list)


# =============================================================================
# FAST-PATH (IMMEDIATE) ANALYST
# =============================================================================


@dataclass
class ImmediateInput:
    notes: str
    employee: EmployeeInfo
    characteristic: Optional[str] = None


@dataclass
class ImmediateOutput:
    has_actionable_advice: bool = False
    needs_deep_analysis: bool = True
    reason: str = ""
    situation_summary: str = ""
    insight: Optional[Insight] = None


# =============================================================================
# DEEP ANALYST
# =============================================================================


@dataclass
class AnalystInput:
    notes: str
    employee: EmployeeInfo
    characteristic: Optional[str] = None
    previous_meetings: List[MeetingSummary] = field(default_factory=list)
    agreement_details: List[AgreementDetail] = field(default_factory=list)


@dataclass
class AnalystOutput:
    insights: List[Insight] = field(default_factory=list)
    employee_state: EmployeeState = field(default_factory=EmployeeState)
    context_summary: str = ""


# =============================================================================
# PROFILE DEVIATION
# =============================================================================


@dataclass
class DeviationInput:
    current_behavior: str
    employee: EmployeeInfo
    current_topics: List[str] = field(default_factory=list)
    current_sentiment: str = "unknown"
    current_interaction_mode: Optional[str] = None
    profile: Optional[str] = None
    previous_meetings: List[MeetingSummary] = field(default_factory=list)


@dataclass
class DeviationOutput:
    has_deviation: bool = False
    explanation: str = ""
    deviation_type: Optional[str] = None
    severity: Optional[str] = None
    message: Optional[str] = None
    recommended_action: Optional[str] = None


# =============================================================================
# DECISION
# =============================================================================


@dataclass
class SessionContext:
    meeting_duration_minutes: int = 0
    messages_sent_this_session: int = 0


@dataclass
class DecisionInput:
    analysis: AnalystOutput
    context: SessionContext = field(default_factory=SessionContext)
    recent_assistant_messages: List[str] = field(default_factory=list)


@dataclass
class DecisionOutput:
    should_intervene: bool = False
    reason: str = ""
    intervention_type: Optional[str] = None
    priority: Optional[str] = None
    insight_index: Optional[int] = None


# =============================================================================
# COMPOSER
# =============================================================================


@dataclass
class ComposerInput:
    intervention_type: str
    insight: Insight
    employee_name: str
    context_summary: str = ""


@dataclass
class ComposedMessage:
    text: str
    format: str = "plain"


@dataclass
class ActionCard:
    kind: str
    title: str
    cta: Dict[str, Any]
    subtitle: Optional[str] = None


@dataclass
class ComposerOutput:
    message: Optional[ComposedMessage] = None
    action_card: Optional[ActionCard] = None
