"""
Meeting context provider.

Read-only access to the employee, meeting, profile text, open commitments
and recent meeting history the agents reason over. Storage is pluggable:
ContextProvider defines the reads, InMemoryContextProvider is the default
backend (and the one tests use).

get_context() assembles everything for one turn. A missing employee is the
only hard failure; every other read degrades to "absent" on error.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from errors import NotFoundError, degrade_on_error

logger = logging.getLogger(__name__)


def weight_for_age(days_ago: int) -> str:
    """Recency weight for a commitment: high within a week, medium within a month."""
    if days_ago <= 7:
        return "high"
    if days_ago <= 30:
        return "medium"
    return "low"


@dataclass
class EmployeeInfo:
    id: str
    name: str
    position: str = ""
    team: str = ""
    email: str = ""


@dataclass
class MeetingSummary:
    id: str
    employee_id: str
    date: date
    status: str = "completed"
    notes: str = ""
    satisfaction: Optional[int] = None  # 1-10, manager's rating


@dataclass
class Agreement:
    """An open commitment as stored."""

    id: str
    employee_id: str
    title: str
    created_at: date
    responsible_type: str = "employee_task"  # employee_task | manager_task
    status: str = "pending"
    due_date: Optional[date] = None


@dataclass
class AgreementDetail:
    """A commitment as the agents see it, weighted by recency."""

    title: str
    responsible_type: str
    status: str
    due_date: Optional[str]
    days_ago: int
    weight: str
    is_overdue: bool

    @classmethod
    def from_agreement(cls, agreement: Agreement, today: date) -> "AgreementDetail":
        days_ago = max(0, (today - agreement.created_at).days)
        return cls(
            title=agreement.title,
            responsible_type=agreement.responsible_type,
            status=agreement.status,
            due_date=agreement.due_date.isoformat() if agreement.due_date else None,
            days_ago=days_ago,
            weight=weight_for_age(days_ago),
            is_overdue=bool(agreement.due_date and agreement.due_date < today),
        )


@dataclass
class AssistantContext:
    """Everything the pipeline reads about one meeting."""

    employee: EmployeeInfo
    meeting: Optional[MeetingSummary] = None
    characteristic: Optional[str] = None
    agreement_details: List[AgreementDetail] = field(default_factory=list)
    previous_meetings: List[MeetingSummary] = field(default_factory=list)

    @property
    def open_agreements(self) -> List[str]:
        return [a.title for a in self.agreement_details]


class ContextProvider(ABC):
    """Pure reads over meeting/employee storage."""

    @abstractmethod
    async def get_employee(self, employee_id: str) -> Optional[EmployeeInfo]:
        ...

    @abstractmethod
    async def get_meeting(self, meeting_id: str) -> Optional[MeetingSummary]:
        ...

    @abstractmethod
    async def get_characteristic(self, employee_id: str) -> Optional[str]:
        ...

    @abstractmethod
    async def list_open_agreements(self, employee_id: str) -> List[Agreement]:
        ...

    @abstractmethod
    async def list_previous_meetings(self, employee_id: str, limit: int = 3) -> List[MeetingSummary]:
        """Most recent completed meetings first."""
        ...

    async def get_context(
        self, meeting_id: str, employee_id: str, history_limit: int = 3, today: Optional[date] = None
    ) -> AssistantContext:
        """Assemble the turn context.

        Raises:
            NotFoundError: the employee does not exist
        """
        today = today or date.today()

        read_meeting = degrade_on_error("meeting", logger=logger)(self.get_meeting)
        read_characteristic = degrade_on_error("characteristic", logger=logger)(self.get_characteristic)
        read_agreements = degrade_on_error("agreements", default=list, logger=logger)(self.list_open_agreements)
        read_history = degrade_on_error("history", default=list, logger=logger)(self.list_previous_meetings)

        employee, meeting, characteristic, agreements, history = await asyncio.gather(
            self.get_employee(employee_id),
            read_meeting(meeting_id),
            read_characteristic(employee_id),
            read_agreements(employee_id),
            read_history(employee_id, history_limit),
        )

        if employee is None:
            raise NotFoundError("Employee not found", resource_type="employee", resource_id=employee_id)

        details = [AgreementDetail.from_agreement(a, today) for a in agreements]
        previous = [m for m in history if m.id != meeting_id]

        return AssistantContext(
            employee=employee,
            meeting=meeting,
            characteristic=characteristic or None,
            agreement_details=details,
            previous_meetings=previous,
        )


class InMemoryContextProvider(ContextProvider):
    """Dict-backed provider."""

    def __init__(self):
        self.employees: Dict[str, EmployeeInfo] = {}
        self.meetings: Dict[str, MeetingSummary] = {}
        self.characteristics: Dict[str, str] = {}
        self.agreements: Dict[str, Agreement] = {}

    def add_employee(self, employee: EmployeeInfo) -> EmployeeInfo:
        self.employees[employee.id] = employee
        return employee

    def add_meeting(self, meeting: MeetingSummary) -> MeetingSummary:
        self.meetings[meeting.id] = meeting
        return meeting

    def set_characteristic(self, employee_id: str, text: str) -> None:
        self.characteristics[employee_id] = text

    def add_agreement(self, agreement: Agreement) -> Agreement:
        self.agreements[agreement.id] = agreement
        return agreement

    async def get_employee(self, employee_id: str) -> Optional[EmployeeInfo]:
        return self.employees.get(employee_id)

    async def get_meeting(self, meeting_id: str) -> Optional[MeetingSummary]:
        return self.meetings.get(meeting_id)

    async def get_characteristic(self, employee_id: str) -> Optional[str]:
        return self.characteristics.get(employee_id)

    async def list_open_agreements(self, employee_id: str) -> List[Agreement]:
        open_items = [
            a for a in self.agreements.values()
            if a.employee_id == employee_id and a.status not in ("completed", "cancelled")
        ]
        return sorted(open_items, key=lambda a: a.created_at, reverse=True)

    async def list_previous_meetings(self, employee_id: str, limit: int = 3) -> List[MeetingSummary]:
        completed = [
            m for m in self.meetings.values()
            if m.employee_id == employee_id and m.status == "completed"
        ]
        completed.sort(key=lambda m: m.date, reverse=True)
        return completed[:limit]


_provider: Optional[ContextProvider] = None


def get_context_provider() -> ContextProvider:
    """Get the process-wide context provider (in-memory by default)."""
    global _provider
    if _provider is None:
        _provider = InMemoryContextProvider()
    return _provider


def set_context_provider(provider: ContextProvider) -> None:
    global _provider
    _provider = provider
