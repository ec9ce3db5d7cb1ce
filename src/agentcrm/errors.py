"""Exception types shared across agentcrm components."""


class AgentCRMError(Exception):
    """Base class for all agentcrm errors."""


class RecordStoreError(AgentCRMError):
    """Raised when the record store rejects a read or write."""

    def __init__(self, message: str, *, code: str | None = None, collection: str | None = None):
        super().__init__(message)
        self.code = code
        self.collection = collection


class UniqueViolationError(RecordStoreError):
    """Raised when an insert or update breaks a uniqueness constraint."""

    def __init__(self, message: str, *, collection: str | None = None):
        super().__init__(message, code="unique_violation", collection=collection)


class NotFoundError(RecordStoreError):
    """Raised when a record addressed by id does not exist."""

    def __init__(self, message: str, *, collection: str | None = None):
        super().__init__(message, code="not_found", collection=collection)


class LLMError(AgentCRMError):
    """Raised when the language-model provider cannot be reached or fails."""

    def __init__(self, message: str, *, provider: str | None = None, role: str | None = None):
        super().__init__(message)
        self.provider = provider
        self.role = role


class PlanningError(AgentCRMError):
    """Raised when a planner cannot produce a valid structured plan."""

    def __init__(self, message: str, planner_name: str, details: dict | None = None):
        super().__init__(message)
        self.planner_name = planner_name
        self.details = details or {}


class AuthError(AgentCRMError):
    """Raised when a caller token cannot be verified."""
