"""CLI entrypoint for agentcrm."""

import json
import sys
from pathlib import Path

import click

from agentcrm.config import AppConfig
from agentcrm.errors import AgentCRMError, AuthError, LLMError
from agentcrm.logging_setup import configure_logging
from agentcrm.store.duckdb_store import DuckDBRecordStore
from agentcrm.tenancy import CallerContext, JWTIdentityProvider, TenantResolver


def _config(db_path: str | None) -> AppConfig:
    config = AppConfig.from_env()
    if db_path:
        config.db_path = Path(db_path)
    configure_logging(config.log_level)
    return config


def _caller(config: AppConfig, token: str | None, team_id: str | None) -> CallerContext:
    try:
        user_id = JWTIdentityProvider(config.jwt_secret, audience=config.jwt_audience).resolve_user(token)
    except AuthError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(2)
    return CallerContext(user_id=user_id, team_id=team_id)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


db_path_option = click.option(
    "--db-path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Path to DuckDB database file (default: $ACRM_DB_PATH or ./data/agentcrm.duckdb)",
)
token_option = click.option("--token", default=None, help="Caller token (HS256 JWT)")
team_option = click.option("--team-id", default=None, help="Act within this team")
provider_option = click.option(
    "--provider",
    type=click.Choice(["ollama", "openai", "anthropic"]),
    default=None,
    help="LLM provider (default: $ACRM_LLM_PROVIDER or ollama)",
)


@click.group()
@click.version_option()
def main():
    """agentcrm - natural-language CRM core."""
    pass


@main.command("init-db")
@db_path_option
def init_db(db_path: str | None):
    """Create the CRM tables if they do not exist."""
    config = _config(db_path)
    DuckDBRecordStore(config.db_path)
    click.echo(f"✅ Database ready at {config.db_path}")


@main.command("call-tool")
@click.argument("name")
@click.option("--args", "args_json", default="{}", help="Tool arguments as a JSON object")
@token_option
@team_option
@db_path_option
def call_tool(name: str, args_json: str, token: str | None, team_id: str | None, db_path: str | None):
    """Run one CRM tool through the dispatcher."""
    from agentcrm.dispatch.dispatcher import ToolDispatcher

    try:
        args = json.loads(args_json)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--args")
    if not isinstance(args, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--args")

    config = _config(db_path)
    dispatcher = ToolDispatcher(DuckDBRecordStore(config.db_path))
    result = dispatcher.dispatch(name, args, _caller(config, token, team_id))
    _echo_json(result.to_payload())
    if result.is_error:
        sys.exit(1)


@main.command()
@click.argument("question")
@token_option
@team_option
@provider_option
@db_path_option
def ask(question: str, token: str | None, team_id: str | None, provider: str | None, db_path: str | None):
    """Answer an analytics question with aggregated chart data."""
    from agentcrm.analytics.engine import NO_DATA_MESSAGE, AggregationEngine
    from agentcrm.analytics.plan import LLMQueryPlanner

    config = _config(db_path)
    store = DuckDBRecordStore(config.db_path)
    caller = _caller(config, token, team_id)
    engine = AggregationEngine(store, LLMQueryPlanner(provider=provider, timeout=config.request_budget_seconds))
    try:
        result = engine.analyze_and_fetch_data(question, tenant=TenantResolver(store).resolve(caller))
    except LLMError as e:
        click.echo(f"❌ LLM call failed: {e}", err=True)
        sys.exit(1)

    if result.error:
        click.echo(f"❌ {result.error}", err=True)
        sys.exit(1)
    if not result.data:
        click.echo(NO_DATA_MESSAGE)
        return
    _echo_json(result.to_payload())


@main.command()
@click.argument("message")
@click.option("--no-narrate", is_flag=True, default=False, help="Print the raw tool result text")
@token_option
@team_option
@provider_option
@db_path_option
def chat(
    message: str,
    no_narrate: bool,
    token: str | None,
    team_id: str | None,
    provider: str | None,
    db_path: str | None,
):
    """Send one chat message and print the reply."""
    from agentcrm.chat.orchestrator import ChatOrchestrator
    from agentcrm.dispatch.dispatcher import ToolDispatcher

    config = _config(db_path)
    orchestrator = ChatOrchestrator(
        ToolDispatcher(DuckDBRecordStore(config.db_path)),
        narrate=not no_narrate,
        provider=provider,
        timeout=config.request_budget_seconds,
    )
    try:
        reply = orchestrator.run_turn([{"role": "user", "content": message}], _caller(config, token, team_id))
    except AgentCRMError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(reply.text)
    if reply.tool_name:
        click.echo(f"\n[tool: {reply.tool_name}]", err=True)
    if reply.chart_data:
        click.echo("\nChart data:")
        _echo_json(reply.chart_data)


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes")
def serve(host: str, port: int, reload: bool):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("agentcrm.api.server:create_app", factory=True, host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
