"""Typed argument models for every CRM tool.

Model output reaches the dispatcher as an untyped dict; it is validated
here against the model registered for the tool name before any handler
runs. Unknown keys are ignored, missing required fields are reported back
to the caller as a readable list.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agentcrm.models import DealStatus, InteractionType

DEFAULT_TAG_COLOR = "#A2B758"
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 500

_INTERACTION_SYNONYMS = {
    InteractionType.CALL: ("call", "phone", "phone call", "phone_call"),
    InteractionType.MEETING: ("meeting", "meet", "appointment", "schedule", "scheduled", "demo"),
    InteractionType.EMAIL: ("email", "e-mail", "mail", "message"),
    InteractionType.NOTE: ("note", "task", "todo", "to-do", "reminder", "remind", "follow-up", "follow up", "followup"),
}


def normalize_interaction_type(value: Any) -> InteractionType:
    """Map free-form activity words onto the four interaction types."""
    if isinstance(value, InteractionType):
        return value
    text = str(value or "").strip().lower()
    for kind, words in _INTERACTION_SYNONYMS.items():
        if text in words:
            return kind
    for kind, words in _INTERACTION_SYNONYMS.items():
        if any(word in text for word in words):
            return kind
    return InteractionType.NOTE


def _strip_or_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    def record(self, *, exclude: set[str] | None = None) -> dict[str, Any]:
        """Store-ready dict of the fields the caller actually set."""
        return self.model_dump(mode="json", exclude_none=True, exclude=exclude)


class TeamScoped(ToolArgs):
    team_id: str | None = None

    @field_validator("team_id", mode="before")
    @classmethod
    def _blank_team(cls, v: Any) -> Any:
        return _strip_or_none(v)


class RecordIdArgs(TeamScoped):
    id: str = Field(..., min_length=1)


class ListArgs(TeamScoped):
    limit: int = Field(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT)


# ----------------------------------------------------------------------------
# Accounts
# ----------------------------------------------------------------------------

class CreateAccountArgs(TeamScoped):
    name: str = Field(..., min_length=1)
    industry: str | None = None
    website: str | None = None
    assigned_to: str | None = None


class UpdateAccountArgs(RecordIdArgs):
    name: str | None = Field(None, min_length=1)
    industry: str | None = None
    website: str | None = None
    assigned_to: str | None = None


class ListAccountsArgs(ListArgs):
    industry: str | None = None


# ----------------------------------------------------------------------------
# Contacts
# ----------------------------------------------------------------------------

class CreateContactArgs(TeamScoped):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    account_id: str | None = None
    email: str | None = None
    phone: str | None = None
    role: str | None = None
    assigned_to: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, v: Any) -> Any:
        v = _strip_or_none(v)
        return v.lower() if isinstance(v, str) else v

    @field_validator("account_id", "phone", "role", "assigned_to", mode="before")
    @classmethod
    def _blank_optional(cls, v: Any) -> Any:
        return _strip_or_none(v)


class UpdateContactArgs(RecordIdArgs):
    first_name: str | None = Field(None, min_length=1)
    last_name: str | None = Field(None, min_length=1)
    account_id: str | None = None
    email: str | None = None
    phone: str | None = None
    role: str | None = None
    assigned_to: str | None = None


class ListContactsArgs(ListArgs):
    account_id: str | None = None


class SearchContactsArgs(ListArgs):
    query: str = Field(..., min_length=1)


class MergeRecordsArgs(TeamScoped):
    source_id: str = Field(..., min_length=1)
    target_id: str = Field(..., min_length=1)


# ----------------------------------------------------------------------------
# Deals
# ----------------------------------------------------------------------------

class CreateDealArgs(TeamScoped):
    name: str = Field(..., min_length=1)
    account_id: str | None = None
    pipeline_id: str | None = None
    amount: float | None = Field(None, ge=0)
    stage: str = "Lead"
    status: DealStatus = DealStatus.OPEN
    close_date: str | None = None
    assigned_to: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_alias(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() == "closed":
            return DealStatus.WON
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("stage", mode="before")
    @classmethod
    def _default_stage(cls, v: Any) -> Any:
        return _strip_or_none(v) or "Lead"

    @field_validator("account_id", "pipeline_id", "close_date", mode="before")
    @classmethod
    def _blank_optional(cls, v: Any) -> Any:
        return _strip_or_none(v)


class UpdateDealArgs(RecordIdArgs):
    name: str | None = Field(None, min_length=1)
    account_id: str | None = None
    pipeline_id: str | None = None
    amount: float | None = Field(None, ge=0)
    stage: str | None = None
    status: DealStatus | None = None
    close_date: str | None = None
    assigned_to: str | None = None


class ListDealsArgs(ListArgs):
    account_id: str | None = None
    stage: str | None = None
    status: DealStatus | None = None


class MoveDealStageArgs(RecordIdArgs):
    stage: str = Field(..., min_length=1)


class CloseDealArgs(RecordIdArgs):
    status: Literal["won", "lost"]
    close_date: str | None = None


# ----------------------------------------------------------------------------
# Interactions
# ----------------------------------------------------------------------------

class CreateInteractionArgs(TeamScoped):
    type: InteractionType = InteractionType.NOTE
    contact_id: str | None = None
    deal_id: str | None = None
    summary: str | None = None
    transcript: str | None = None
    title: str | None = None
    description: str | None = None
    sentiment: str | None = None
    due_date: str | None = None
    assigned_to: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> InteractionType:
        return normalize_interaction_type(v)

    def record(self, *, exclude: set[str] | None = None) -> dict[str, Any]:
        data = super().record(exclude={"title", "description"} | (exclude or set()))
        if not data.get("summary") and self.title:
            data["summary"] = self.title
        if not data.get("transcript") and self.description:
            data["transcript"] = self.description
        return data


class UpdateInteractionArgs(RecordIdArgs):
    type: InteractionType | None = None
    contact_id: str | None = None
    deal_id: str | None = None
    summary: str | None = None
    transcript: str | None = None
    sentiment: str | None = None
    due_date: str | None = None
    assigned_to: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> InteractionType | None:
        return None if v is None else normalize_interaction_type(v)


class ListInteractionsArgs(ListArgs):
    contact_id: str | None = None
    deal_id: str | None = None
    type: InteractionType | None = None


# ----------------------------------------------------------------------------
# Tags
# ----------------------------------------------------------------------------

class CreateTagArgs(TeamScoped):
    tag_name: str = Field(..., min_length=1)
    color: str = DEFAULT_TAG_COLOR
    entity_type: str = "all"


class TagSpec(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    tag_name: str = Field(..., min_length=1)
    color: str = DEFAULT_TAG_COLOR
    entity_type: str = "all"


class CreateTagsArgs(TeamScoped):
    tags: list[TagSpec] = Field(..., min_length=1)

    @field_validator("tags", mode="before")
    @classmethod
    def _names_to_specs(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [{"tag_name": item} if isinstance(item, str) else item for item in v]
        return v


class ListTagsArgs(TeamScoped):
    entity_type: str | None = None


class DeleteTagsByPrefixArgs(TeamScoped):
    prefix: str = Field(..., min_length=1)


class AttachTagArgs(TeamScoped):
    tag_name: str = Field(..., min_length=1)
    color: str = DEFAULT_TAG_COLOR
    entity_type: str = "all"


class MergeTagsArgs(TeamScoped):
    source_id: str = Field(..., min_length=1)
    target_name: str = Field(..., min_length=1)


# ----------------------------------------------------------------------------
# Pipelines
# ----------------------------------------------------------------------------

def _clean_stages(v: Any) -> Any:
    if isinstance(v, list):
        return [s.strip() for s in v if isinstance(s, str) and s.strip()]
    return v


class CreatePipelineArgs(TeamScoped):
    name: str = Field(..., min_length=1)
    stages: list[str] = Field(..., min_length=1)

    @field_validator("stages", mode="before")
    @classmethod
    def _stages(cls, v: Any) -> Any:
        return _clean_stages(v)


class UpdatePipelineArgs(RecordIdArgs):
    name: str | None = Field(None, min_length=1)
    stages: list[str] | None = Field(None, min_length=1)

    @field_validator("stages", mode="before")
    @classmethod
    def _stages(cls, v: Any) -> Any:
        return _clean_stages(v)


class ListPipelinesArgs(TeamScoped):
    pass


# ----------------------------------------------------------------------------
# Search
# ----------------------------------------------------------------------------

class SearchCrmArgs(TeamScoped):
    query: str = Field(..., min_length=1)
    limit: int = Field(10, ge=1, le=100)


def format_validation_error(tool_name: str, error: ValidationError) -> str:
    """Render a pydantic error as a short, user-facing message."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        if item.get("type") == "missing":
            problems.append(f"- {location} is required")
        else:
            problems.append(f"- {location}: {item.get('msg', 'invalid value')}")
    return f"Invalid arguments for {tool_name}:\n" + "\n".join(problems)
