"""Data classes for the field-service domain model."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class QuestionType(str, Enum):
    YES_NO_NA = "Yes/No/NA"
    SINGLE_CHOICE = "Single Choice"
    MULTIPLE_CHOICE = "Multiple Choice"
    NUMBER = "Number"
    DATE = "Date"
    TEXT = "Text"


class Branch(str, Enum):
    IF_YES = "IF YES"
    IF_NO = "IF NO"


CHOICE_TYPES = (QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE)


@dataclass
class Choice:
    id: str
    label: str


@dataclass
class ChecklistQuestion:
    id: str
    text: str
    type: QuestionType
    required: bool = False
    description: str = ""
    tags: list[str] = field(default_factory=list)
    choices: list[Choice] = field(default_factory=list)
    conditional_questions: list["ConditionalQuestion"] = field(default_factory=list)


@dataclass
class ConditionalQuestion:
    branch: Branch
    question: ChecklistQuestion


@dataclass
class Checklist:
    id: str
    name: str
    questions: list[ChecklistQuestion]
    description: str = ""
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    status: str = "Active"


@dataclass
class ChecklistAnswer:
    question_id: str
    value: Any = None  # str | list[str] | int | float | None


@dataclass
class FlatQuestion:
    question: ChecklistQuestion
    depth: int = 0
    parent_answer: Optional[str] = None
    branch: Optional[Branch] = None


class WarningLevel(str, Enum):
    NONE = "none"
    WARNING = "warning"
    ORANGE = "orange"
    CRITICAL = "critical"
    BLOCKED = "blocked"


@dataclass
class OfflineStatus:
    is_online: bool
    offline_duration_ms: int
    last_sync_time: Optional[int]
    warning_level: WarningLevel
    is_blocked: bool
    offline_duration_formatted: str = ""
    last_sync_formatted: str = "Never"
    offline_start_time: Optional[int] = None


class OperationType(str, Enum):
    CONTAINER = "container"
    ORDER = "order"
    MANIFEST = "manifest"
    MATERIALS = "materials"


class SyncStatus(str, Enum):
    OFFLINE = "offline"
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


@dataclass
class PendingOperation:
    id: str
    type: OperationType
    payload: Any
    enqueued_at: int
    retry_count: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "payload": self.payload,
            "enqueued_at": self.enqueued_at,
            "retry_count": self.retry_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PendingOperation":
        return cls(
            id=data["id"],
            type=OperationType(data["type"]),
            payload=data.get("payload"),
            enqueued_at=int(data["enqueued_at"]),
            retry_count=int(data.get("retry_count", 0)),
        )


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ValidationIssue:
    id: str
    message: str
    severity: Severity
    screen: str
    description: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "message": self.message,
            "severity": self.severity.value,
            "screen": self.screen,
        }
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ValidationIssue":
        return cls(
            id=data["id"],
            message=data["message"],
            severity=Severity(data["severity"]),
            screen=data["screen"],
            description=data.get("description"),
        )
