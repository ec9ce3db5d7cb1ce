"""LLM access: provider routing, JSON recovery and structured planners."""

from agentcrm.llm.parsing import extract_json, parse_json_strict
from agentcrm.llm.router import call_llm

__all__ = ["call_llm", "extract_json", "parse_json_strict"]
