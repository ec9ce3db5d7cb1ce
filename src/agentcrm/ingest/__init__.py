"""Transcript ingest."""

from agentcrm.ingest.scribe import ScribeResult, TranscriptScribe

__all__ = ["ScribeResult", "TranscriptScribe"]
