"""agentcrm - natural-language core for a multi-tenant CRM."""

__version__ = "0.4.0"
