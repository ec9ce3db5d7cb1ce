"""Duplicate detection and merging for contacts and deals."""

from agentcrm.dedup.detector import DuplicateDetector
from agentcrm.dedup.merge import merge_contacts, merge_deals

__all__ = ["DuplicateDetector", "merge_contacts", "merge_deals"]
