"""HTTP API for the chat client.

This module provides the FastAPI app factory.
"""

from agentcrm.api.server import create_app

__all__ = ["create_app"]
