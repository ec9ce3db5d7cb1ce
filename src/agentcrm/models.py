"""Shared pydantic models: CRM enums, duplicate matches and the tool envelope.

Wire payloads use camelCase keys (``isError``, ``structuredContent``,
``duplicateMatches``) because the chat client consumes them verbatim; the
Python side keeps snake_case attributes.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DealStatus(str, Enum):
    OPEN = "open"
    WON = "won"
    LOST = "lost"


class InteractionType(str, Enum):
    CALL = "call"
    MEETING = "meeting"
    EMAIL = "email"
    NOTE = "note"


class SuggestedAction(str, Enum):
    """What the caller should do with a candidate record."""

    CREATE = "create"
    MERGE = "merge"
    UPDATE = "update"
    SKIP = "skip"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DuplicateMatch(CamelModel):
    """An existing record scored against a create candidate."""

    id: str
    similarity: float = Field(..., ge=0.0, le=1.0)
    match_reason: str
    data: dict[str, Any] = Field(default_factory=dict)


class DeduplicationResult(CamelModel):
    is_duplicate: bool
    matches: list[DuplicateMatch] = Field(default_factory=list)
    suggested_action: SuggestedAction = SuggestedAction.CREATE
    message: str = "No duplicates found"

    @property
    def top_match(self) -> DuplicateMatch | None:
        return self.matches[0] if self.matches else None


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolResult(CamelModel):
    """Uniform envelope returned by every tool call."""

    content: list[TextContent] = Field(default_factory=list)
    structured_content: dict[str, Any] | None = None
    is_error: bool = False

    @classmethod
    def ok(cls, text: str, structured: dict[str, Any] | None = None) -> "ToolResult":
        return cls(content=[TextContent(text=text)], structured_content=structured)

    @classmethod
    def error(cls, text: str, structured: dict[str, Any] | None = None) -> "ToolResult":
        return cls(content=[TextContent(text=text)], structured_content=structured, is_error=True)

    @property
    def text(self) -> str:
        return "\n".join(part.text for part in self.content)

    def with_prefix(self, prefix: str) -> "ToolResult":
        """Return a copy whose first text block starts with ``prefix``."""
        if not self.content:
            return self.model_copy(update={"content": [TextContent(text=prefix)]})
        first, *rest = self.content
        updated = TextContent(text=f"{prefix}\n\n{first.text}")
        return self.model_copy(update={"content": [updated, *rest]})


class MergeResult(BaseModel):
    success: bool
    merged: dict[str, Any] | None = None
    error: str | None = None
