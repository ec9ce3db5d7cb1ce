"""Transcript scribe: turn a sales-call transcript into CRM records.

The planner extracts a summary, sentiment, the primary contact, any deal
discussed and next steps. Contacts and deals are created through the tool
dispatcher so they get the same duplicate screening as chat creates; a
strong duplicate reuses the existing record instead of failing the ingest.
"""

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from agentcrm.dispatch.dispatcher import ToolDispatcher
from agentcrm.errors import PlanningError
from agentcrm.llm.planner import LLMPlanner, Planner
from agentcrm.models import CamelModel, ToolResult
from agentcrm.tenancy import CallerContext

logger = logging.getLogger(__name__)


class TranscriptContact(CamelModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str | None = None
    role: str | None = None


class TranscriptDeal(CamelModel):
    name: str = Field(..., min_length=1)
    amount: float | None = None
    stage: str = "Lead"


class TranscriptExtraction(CamelModel):
    summary: str
    sentiment: Literal["positive", "neutral", "negative"] = "neutral"
    contact: TranscriptContact | None = None
    deal: TranscriptDeal | None = None
    next_steps: list[str] = Field(default_factory=list)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _lower(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


SCRIBE_SYSTEM_PROMPT = """You analyze sales interactions and extract the key CRM data. Output ONLY valid JSON. No markdown.

Output format:
{
  "summary": "<brief summary of the interaction>",
  "sentiment": "positive" | "neutral" | "negative",
  "contact": {"firstName": "...", "lastName": "...", "email": "<optional>", "role": "<optional>"} or null,
  "deal": {"name": "...", "amount": <number or null>, "stage": "..."} or null,
  "nextSteps": ["<action item>", ...]
}

Rules:
- contact is the primary customer-side person in the conversation, null if nobody is named.
- deal is any opportunity discussed, null if none.
- Never invent emails or amounts that are not in the text."""

SCRIBE_USER_PROMPT_TEMPLATE = """Analyze this sales interaction and extract the key CRM data:

"{text}\""""


class LLMTranscriptPlanner(LLMPlanner[TranscriptExtraction]):
    name = "transcript_scribe"
    llm_role = "planner"
    system_prompt = SCRIBE_SYSTEM_PROMPT
    user_prompt_template = SCRIBE_USER_PROMPT_TEMPLATE
    output_schema = TranscriptExtraction

    def preprocess(self, data: dict[str, Any]) -> dict[str, Any]:
        if "deal" not in data and "opportunity" in data:
            data["deal"] = data.pop("opportunity")
        for key in ("contact", "deal"):
            if data.get(key) in ({}, ""):
                data[key] = None
        if data.get("nextSteps") is None and data.get("next_steps") is None:
            data["nextSteps"] = []
        return data


class ScribeResult(BaseModel):
    success: bool
    extracted: TranscriptExtraction | None = None
    contact_id: str | None = None
    deal_id: str | None = None
    interaction_id: str | None = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


def _created_id(result: ToolResult, collection: str) -> str | None:
    """Id of the created row, or of the existing record a duplicate block points at."""
    structured = result.structured_content or {}
    if result.is_error:
        matches = structured.get("duplicateMatches") or []
        if matches:
            logger.info("Reusing existing %s %s", collection, matches[0]["id"])
            return matches[0]["id"]
        logger.warning("Could not create %s from transcript: %s", collection, result.text)
        return None
    rows = structured.get(collection) or []
    return rows[0]["id"] if rows else None


class TranscriptScribe:
    def __init__(self, dispatcher: ToolDispatcher, planner: Planner[TranscriptExtraction] | None = None):
        self.dispatcher = dispatcher
        self.planner = planner or LLMTranscriptPlanner()

    def ingest_transcript(
        self,
        text: str,
        caller: CallerContext | None = None,
        account_id: str | None = None,
    ) -> ScribeResult:
        """Extract, upsert and log one transcript.

        Raises:
            ValueError: If the transcript is empty
            LLMError: If the planner's model provider is unreachable
        """
        if not text or not text.strip():
            raise ValueError("Missing text")
        caller = caller or CallerContext.anonymous()

        try:
            extracted = self.planner.plan(text)
        except PlanningError as e:
            logger.warning("Transcript extraction failed: %s", e)
            return ScribeResult(success=False, error="Could not extract CRM data from the transcript")

        contact_id = None
        if extracted.contact is not None:
            args = extracted.contact.model_dump(exclude_none=True)
            if account_id:
                args["account_id"] = account_id
            contact_id = _created_id(self.dispatcher.dispatch("create_contact", args, caller), "contacts")

        deal_id = None
        if extracted.deal is not None:
            args = extracted.deal.model_dump(exclude_none=True)
            if account_id:
                args["account_id"] = account_id
            deal_id = _created_id(self.dispatcher.dispatch("create_deal", args, caller), "deals")

        interaction = self.dispatcher.dispatch(
            "create_interaction",
            {
                "type": "meeting",
                "contact_id": contact_id,
                "deal_id": deal_id,
                "summary": extracted.summary,
                "transcript": text,
                "sentiment": extracted.sentiment,
            },
            caller,
        )
        if interaction.is_error:
            return ScribeResult(
                success=False,
                extracted=extracted,
                contact_id=contact_id,
                deal_id=deal_id,
                error=interaction.text,
            )

        interaction_id = interaction.structured_content["interactions"][0]["id"]
        logger.info(
            "Ingested transcript: contact=%s deal=%s interaction=%s", contact_id, deal_id, interaction_id
        )
        return ScribeResult(
            success=True,
            extracted=extracted,
            contact_id=contact_id,
            deal_id=deal_id,
            interaction_id=interaction_id,
        )
