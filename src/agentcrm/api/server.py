"""FastAPI backend for the agentcrm chat client.

Routes:
- POST /api/chat: one chat turn (intent -> tool -> chart data -> narrated reply)
- POST /api/analytics: analytics question -> aggregated chart data
- GET /api/mcp/tools and POST /api/mcp/call-tool: the tool catalog and dispatcher
- POST /api/ingest/transcript: the transcript scribe
- GET /health

Every error response is ``{"error": "<message>"}``; stack traces never leave
the server.
"""

import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from agentcrm import __version__
from agentcrm.analytics.engine import NO_DATA_MESSAGE, AggregationEngine
from agentcrm.chat.orchestrator import ChatOrchestrator
from agentcrm.config import AppConfig
from agentcrm.dispatch.dispatcher import ToolDispatcher
from agentcrm.errors import AuthError, LLMError
from agentcrm.ingest.scribe import TranscriptScribe
from agentcrm.logging_setup import configure_logging
from agentcrm.store.duckdb_store import DuckDBRecordStore
from agentcrm.tenancy import CallerContext, IdentityProvider, JWTIdentityProvider, TenantResolver
from agentcrm.tools.catalog import tool_definitions

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Sorry, I encountered an error."
UPSTREAM_ERROR = "The language model is unavailable right now. Please try again."


class RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    caller_token: str | None = Field(None, alias="callerToken")


class ChatMessage(BaseModel):
    role: str
    content: str = ""


class ChatRequest(RequestModel):
    """One chat turn: the conversation so far, last message from the user."""
    messages: list[ChatMessage] = Field(..., min_length=1)


class AnalyticsRequest(RequestModel):
    question: str = Field(..., min_length=1, validation_alias=AliasChoices("question", "query"))


class CallToolRequest(RequestModel):
    name: str | None = None
    arguments: dict[str, Any] = Field(default_factory=dict)


class TranscriptRequest(RequestModel):
    text: str | None = None
    account_id: str | None = Field(None, alias="accountId")


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def create_app(
    db_path: str | Path | None = None,
    config: AppConfig | None = None,
    identity: IdentityProvider | None = None,
) -> FastAPI:
    """Build the API app around one record store.

    Args:
        db_path: DuckDB file; overrides ``config.db_path``
        config: Settings, read from the environment when omitted
        identity: Caller-token verifier, JWT (HS256) when omitted
    """
    config = config or AppConfig.from_env()
    if db_path is not None:
        config.db_path = Path(db_path)
    configure_logging(config.log_level)

    store = DuckDBRecordStore(config.db_path)
    tenants = TenantResolver(store)
    dispatcher = ToolDispatcher(store, tenants=tenants)
    identity = identity or JWTIdentityProvider(config.jwt_secret, audience=config.jwt_audience)
    budget = config.request_budget_seconds

    app = FastAPI(title="agentcrm API", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.orchestrator = ChatOrchestrator(dispatcher, timeout=budget)
    app.state.engine = AggregationEngine(store)
    app.state.scribe = TranscriptScribe(dispatcher)

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())[1:]) or 'body'}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": f"Invalid request: {problems}"})

    @app.exception_handler(AuthError)
    async def auth_error(request: Request, exc: AuthError):
        return JSONResponse(status_code=401, content={"error": str(exc)})

    @app.exception_handler(LLMError)
    async def llm_error(request: Request, exc: LLMError):
        logger.error("LLM provider failure (%s/%s): %s", exc.provider, exc.role, exc)
        return JSONResponse(status_code=502, content={"error": UPSTREAM_ERROR})

    def resolve_caller(body_token: str | None, authorization: str | None) -> CallerContext:
        token = body_token or _bearer_token(authorization)
        return CallerContext(user_id=identity.resolve_user(token))

    @app.get("/health")
    def health_check():
        return {"status": "ok", "version": __version__, "db_path": str(config.db_path)}

    @app.post("/api/chat")
    def chat(request: ChatRequest, authorization: str | None = Header(None)):
        caller = resolve_caller(request.caller_token, authorization)
        try:
            reply = app.state.orchestrator.run_turn(
                [m.model_dump() for m in request.messages], caller
            )
        except (AuthError, LLMError):
            raise
        except Exception:
            logger.exception("Chat turn failed")
            raise HTTPException(status_code=500, detail=GENERIC_ERROR)
        return reply.to_payload()

    @app.post("/api/analytics")
    def analytics(request: AnalyticsRequest, authorization: str | None = Header(None)):
        caller = resolve_caller(request.caller_token, authorization)
        try:
            tenant = tenants.resolve(caller)
            result = app.state.engine.analyze_and_fetch_data(request.question, tenant=tenant)
        except (AuthError, LLMError):
            raise
        except Exception:
            logger.exception("Analytics question failed")
            raise HTTPException(status_code=500, detail="Failed to process query")

        if result.error:
            raise HTTPException(status_code=422, detail=result.error)
        if not result.data:
            raise HTTPException(status_code=404, detail=NO_DATA_MESSAGE)
        return result.to_payload()

    @app.get("/api/mcp/tools")
    def list_tools():
        return {"tools": tool_definitions()}

    @app.post("/api/mcp/call-tool")
    def call_tool(request: CallToolRequest, authorization: str | None = Header(None)):
        if not request.name or not request.name.strip():
            raise HTTPException(status_code=400, detail="Tool name is required")
        caller = resolve_caller(request.caller_token, authorization)
        try:
            result = dispatcher.dispatch(request.name.strip(), request.arguments, caller)
        except Exception as e:
            logger.exception("Tool %s failed", request.name)
            raise HTTPException(status_code=500, detail=f"Tool call failed: {type(e).__name__}")
        return {"result": result.to_payload()}

    @app.post("/api/ingest/transcript")
    def ingest_transcript(request: TranscriptRequest, authorization: str | None = Header(None)):
        if not request.text or not request.text.strip():
            raise HTTPException(status_code=400, detail="Missing text")
        caller = resolve_caller(request.caller_token, authorization)
        try:
            result = app.state.scribe.ingest_transcript(request.text, caller, account_id=request.account_id)
        except (AuthError, LLMError):
            raise
        except Exception:
            logger.exception("Transcript ingest failed")
            raise HTTPException(status_code=500, detail=GENERIC_ERROR)
        if not result.success:
            raise HTTPException(status_code=422, detail=result.error or GENERIC_ERROR)
        return result.to_payload()

    return app
