# schemas/sequence.py
from __future__ import annotations
from typing import List, Optional, Dict, Any, Tuple, Type, ClassVar
from datetime import date, datetime, timedelta
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny, field_validator, model_validator
from pydantic.alias_generators import to_camel

# ---------- Core Enums ----------

class NodeKind(str, Enum):
    ACTION = "action"
    CONDITION = "condition"

class ActionType(str, Enum):
    EMAIL = "email"
    LINKEDIN_MESSAGE = "linkedin-message"
    LINKEDIN_INVITATION = "linkedin-invitation"
    LINKEDIN_VISIT = "linkedin-visit"
    MANUAL_TASK = "manual-task"

class ConditionType(str, Enum):
    EMAIL_OPENED = "email-opened"
    EMAIL_REPLY = "email-reply"
    LINKEDIN_CONNECTION_CHECK = "linkedin-connection-check"
    OPENED_LINKEDIN_MESSAGE = "opened-linkedin-message"
    LINKEDIN_REPLY_CHECK = "linkedin-reply-check"
    CLICKED_LINK = "clicked-link"
    HAS_LINKEDIN = "has-linkedin"
    HAS_EMAIL = "has-email"
    HAS_PHONE = "has-phone"

class Branch(str, Enum):
    MAIN = "main"
    YES = "yes"
    NO = "no"

class DelayUnit(str, Enum):
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"

class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class AttachmentCategory(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"

# Children are visited main first, then yes, then no
BRANCH_ORDER: Dict[Branch, int] = {Branch.MAIN: 0, Branch.YES: 1, Branch.NO: 2}

ACTION_STEP_TYPES = frozenset(a.value for a in ActionType)
CONDITION_STEP_TYPES = frozenset(c.value for c in ConditionType)


def classify_step_type(step_type: str) -> NodeKind:
    """The wire format has no kind field; conditions are recognised by name."""
    if step_type in CONDITION_STEP_TYPES:
        return NodeKind.CONDITION
    return NodeKind.ACTION


def is_known_step_type(step_type: str) -> bool:
    return step_type in ACTION_STEP_TYPES or step_type in CONDITION_STEP_TYPES

# ---------- Wire Base ----------

class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python; both accepted on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0

class Attachment(WireModel):
    id: str
    name: str
    size: int = Field(default=0, ge=0)
    type: str
    url: Optional[str] = None
    category: AttachmentCategory = AttachmentCategory.DOCUMENT

# ---------- Content Variants ----------

class StepContent(WireModel):
    """Fields shared by every step: scheduling plus the derived variable list."""
    delay: int = Field(default=0, ge=0)
    delay_unit: DelayUnit = DelayUnit.DAYS
    variables: List[str] = Field(default_factory=list)

    # Attribute names whose text is scanned for {{placeholders}}
    template_fields: ClassVar[Tuple[str, ...]] = ()

    def template_text(self) -> str:
        return " ".join(getattr(self, name) or "" for name in self.template_fields)

    @classmethod
    def field_name_for(cls, key: str) -> Optional[str]:
        """Resolve a snake_case name or camelCase alias to the attribute name."""
        if key in cls.model_fields:
            return key
        for name, info in cls.model_fields.items():
            if info.alias == key or to_camel(name) == key:
                return name
        return None

class EmailContent(StepContent):
    subject: str = ""
    message: str = ""
    attachments: List[Attachment] = Field(default_factory=list)
    email_addresses: Optional[List[str]] = None

    template_fields: ClassVar[Tuple[str, ...]] = ("subject", "message")

class LinkedInMessageContent(StepContent):
    message: str = ""
    attachments: List[Attachment] = Field(default_factory=list)
    linkedin_account: Optional[str] = None

    template_fields: ClassVar[Tuple[str, ...]] = ("message",)

class LinkedInInvitationContent(StepContent):
    # Optional note sent with the connection request
    message: str = ""
    linkedin_account: Optional[str] = None

    template_fields: ClassVar[Tuple[str, ...]] = ("message",)

class LinkedInVisitContent(StepContent):
    linkedin_account: Optional[str] = None

class ManualTaskContent(StepContent):
    task_title: str = ""
    task_description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    due_days: Optional[int] = Field(default=None, ge=0)
    due_date: Optional[str] = None

    # The title and description play the subject and message roles
    template_fields: ClassVar[Tuple[str, ...]] = ("task_title", "task_description")

    @field_validator("due_date")
    @classmethod
    def validate_due_date(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        _parse_iso_date(value)
        return value

    def resolve_due_date(self, start: date) -> Optional[date]:
        """dueDate wins over dueDays when both are set."""
        if self.due_date:
            return _parse_iso_date(self.due_date)
        if self.due_days is not None:
            return start + timedelta(days=self.due_days)
        return None

class ConditionContent(StepContent):
    """Conditions only carry the wait window before the check runs."""

class UnknownContent(StepContent):
    """Content of a step whose type is not recognised, kept verbatim."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    delay: Any = 0
    delay_unit: Any = DelayUnit.DAYS.value


def _parse_iso_date(value: str) -> date:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise ValueError(f"dueDate '{value}' is not an ISO-8601 date")


CONTENT_MODELS: Dict[str, Type[StepContent]] = {
    ActionType.EMAIL.value: EmailContent,
    ActionType.LINKEDIN_MESSAGE.value: LinkedInMessageContent,
    ActionType.LINKEDIN_INVITATION.value: LinkedInInvitationContent,
    ActionType.LINKEDIN_VISIT.value: LinkedInVisitContent,
    ActionType.MANUAL_TASK.value: ManualTaskContent,
    **{condition.value: ConditionContent for condition in ConditionType},
}


def content_model_for(step_type: str) -> Type[StepContent]:
    return CONTENT_MODELS.get(step_type, UnknownContent)

# ---------- Graph Models ----------

class SequenceNode(WireModel):
    id: str
    kind: NodeKind
    step_type: str
    content: SerializeAsAny[StepContent]
    parent_id: Optional[str] = None
    parent_branch: Optional[Branch] = None
    position: Position = Field(default_factory=Position)

    @model_validator(mode="before")
    @classmethod
    def build_content_variant(cls, data: Any) -> Any:
        if isinstance(data, dict):
            step_type = data.get("step_type", data.get("stepType"))
            content = data.get("content")
            if isinstance(step_type, str) and (content is None or isinstance(content, dict)):
                data = dict(data)
                data["content"] = content_model_for(step_type).model_validate(content or {})
        return data

    @model_validator(mode="after")
    def check_variant(self) -> "SequenceNode":
        if self.kind == NodeKind.CONDITION and self.step_type not in CONDITION_STEP_TYPES:
            raise ValueError(f"Unknown condition type '{self.step_type}'")
        if is_known_step_type(self.step_type) and classify_step_type(self.step_type) != self.kind:
            raise ValueError(f"Step type '{self.step_type}' is not a {self.kind.value} type")
        expected = content_model_for(self.step_type)
        if type(self.content) is not expected:
            raise ValueError(
                f"Step type '{self.step_type}' needs {expected.__name__}, got {type(self.content).__name__}"
            )
        if self.parent_id is None:
            self.parent_branch = None
        elif self.parent_branch is None:
            self.parent_branch = Branch.MAIN
        return self

    @property
    def is_condition(self) -> bool:
        return self.kind == NodeKind.CONDITION

    @property
    def action_type(self) -> Optional[ActionType]:
        if self.kind == NodeKind.ACTION and self.step_type in ACTION_STEP_TYPES:
            return ActionType(self.step_type)
        return None

    @property
    def condition_type(self) -> Optional[ConditionType]:
        if self.kind == NodeKind.CONDITION:
            return ConditionType(self.step_type)
        return None

class ParentRef(WireModel):
    id: str
    branch: Branch = Branch.MAIN

class BranchConnections(WireModel):
    main_children: List[str] = Field(default_factory=list)
    yes_child: Optional[str] = None
    no_child: Optional[str] = None

class FlatStep(WireModel):
    """Persisted parent-pointer record exchanged with the campaign service."""
    id: str
    step_type: str
    parent_id: Optional[str] = None
    # Kept as a plain string so unknown branch names can be reported, not rejected
    parent_branch: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    content: Dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

# ---------- Results ----------

class ViolationCode(str, Enum):
    CYCLE = "cycle"
    BRANCH_OCCUPIED = "branch_occupied"
    INVALID_BRANCH = "invalid_branch"
    UNKNOWN_NODE = "unknown_node"
    DUPLICATE_ID = "duplicate_id"
    UNKNOWN_STEP_TYPE = "unknown_step_type"
    INVALID_CONTENT = "invalid_content"
    DRAG_IN_PROGRESS = "drag_in_progress"

class StructuralViolation(WireModel):
    code: ViolationCode
    message: str
    node_id: Optional[str] = None

class MutationResult(WireModel):
    ok: bool
    node_id: Optional[str] = None
    violation: Optional[StructuralViolation] = None

    @classmethod
    def success(cls, node_id: Optional[str] = None) -> "MutationResult":
        return cls(ok=True, node_id=node_id)

    @classmethod
    def failure(cls, violation: StructuralViolation) -> "MutationResult":
        return cls(ok=False, node_id=violation.node_id, violation=violation)

class WarningCode(str, Enum):
    INVALID_STEP = "invalid_step"
    DUPLICATE_ID = "duplicate_id"
    UNKNOWN_STEP_TYPE = "unknown_step_type"
    UNKNOWN_PARENT = "unknown_parent"
    UNKNOWN_BRANCH = "unknown_branch"
    BRANCH_CONFLICT = "branch_conflict"
    CYCLE_BROKEN = "cycle_broken"
    INVALID_CONTENT = "invalid_content"
    DROPPED_FIELDS = "dropped_fields"
    VARIABLES_RESYNCED = "variables_resynced"
    MISSING_PROSPECT_FIELD = "missing_prospect_field"

class SequenceWarning(WireModel):
    code: WarningCode
    message: str
    step_id: Optional[str] = None

class StepChooserRequest(WireModel):
    """Where the step picked in the add-step chooser will be attached."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    parent_id: Optional[str] = None
    branch: Optional[Branch] = None

    @property
    def parent(self) -> Optional[ParentRef]:
        if self.parent_id is None:
            return None
        return ParentRef(id=self.parent_id, branch=self.branch or Branch.MAIN)
