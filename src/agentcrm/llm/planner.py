"""Injectable structured planners backed by the LLM router.

A planner turns free-form input into a validated pydantic model. The
aggregation engine and the transcript scribe depend only on the ``Planner``
protocol so deterministic post-processing can be tested with a fake.
"""

import json
import logging
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from agentcrm.errors import PlanningError
from agentcrm.llm.parsing import parse_json_strict
from agentcrm.llm.router import call_llm

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
T_co = TypeVar("T_co", covariant=True)


class Planner(Protocol[T_co]):
    """Anything that can turn an input string into a plan."""

    def plan(self, text: str) -> T_co:
        ...


REPAIR_PROMPT_TEMPLATE = """The previous JSON output had errors. Fix it.

Previous output:
{previous_output}

Errors:
{errors}

Rules:
- Output ONLY valid JSON (no markdown)
- Follow the exact schema required
- No extra fields

Return ONLY the corrected JSON."""


class LLMPlanner(Generic[T]):
    """Base class for planners that ask the LLM for a JSON object.

    Subclasses set ``system_prompt``, ``user_prompt_template`` (formatted
    with ``text``) and ``output_schema``; ``plan`` runs the call, parses the
    JSON and validates it, sending a repair prompt on failure.
    """

    name: str = "planner"
    llm_role: str = "planner"
    max_retries: int = 1
    system_prompt: str = ""
    user_prompt_template: str = "{text}"
    output_schema: type[T]

    def __init__(
        self,
        *,
        max_retries: int | None = None,
        provider: str | None = None,
        timeout: int = 60,
    ):
        if max_retries is not None:
            self.max_retries = max_retries
        self.provider = provider
        self.timeout = timeout

    def build_user_prompt(self, text: str) -> str:
        return self.user_prompt_template.format(text=text)

    def _call(self, user_prompt: str) -> str:
        messages = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return call_llm(messages, role=self.llm_role, provider=self.provider, timeout=self.timeout)

    def plan(self, text: str) -> T:
        user_prompt = self.build_user_prompt(text)
        last_error: Exception | None = None
        last_response = ""

        for attempt in range(self.max_retries + 1):
            if attempt == 0:
                response = self._call(user_prompt)
            else:
                repair_prompt = REPAIR_PROMPT_TEMPLATE.format(
                    previous_output=last_response,
                    errors=str(last_error),
                )
                response = self._call(repair_prompt)
            last_response = response

            try:
                data = self.preprocess(parse_json_strict(response))
                return self.output_schema.model_validate(data)
            except (ValidationError, ValueError) as e:
                logger.warning("%s produced invalid output (attempt %d): %s", self.name, attempt + 1, e)
                last_error = e
                continue

        raise PlanningError(
            f"{self.name} failed after {self.max_retries} repair attempts: {last_error}",
            planner_name=self.name,
            details={"last_response": last_response, "error": str(last_error)},
        )

    def preprocess(self, data: dict[str, Any]) -> dict[str, Any]:
        """Hook for subclasses to normalise raw model JSON before validation."""
        return data

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name})>"


def dumps_for_prompt(data: Any, limit: int = 6000) -> str:
    """Serialise data for inclusion in a prompt, truncating long payloads."""
    text = json.dumps(data, indent=2, default=str)
    if len(text) > limit:
        return text[:limit] + "\n... (truncated)"
    return text
