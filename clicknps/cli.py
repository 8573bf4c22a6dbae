"""ClickNPS CLI - operator commands for local setup and the dispatcher."""

import asyncio
import json
import uuid
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import settings
from .errors import NPSError

app = typer.Typer(
    name="clicknps",
    help="ClickNPS - one-click NPS surveys with delayed webhooks",
    no_args_is_help=True,
)
console = Console()


def _output_result(result: dict[str, Any]) -> None:
    console.print_json(json.dumps(result, default=str, indent=2))


def _run(coro):
    """Run a coroutine, turning service errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except NPSError as exc:
        console.print(f"[red]{exc.detail}[/red]")
        raise typer.Exit(1)


def _business_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        console.print(f"[red]Not a business id: {value}[/red]")
        raise typer.Exit(1)


@app.command("serve")
def serve(
    port: int = typer.Option(8024, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Launch the ClickNPS web service."""
    import uvicorn

    console.print(f"[bold cyan]Starting ClickNPS at http://{host}:{port}[/bold cyan]")
    uvicorn.run("clicknps.app:app", host=host, port=port, reload=reload)


@app.command("init-db")
def init_db():
    """Apply database migrations up to head."""
    from alembic import command
    from alembic.config import Config

    command.upgrade(Config(str(settings.base_dir / "alembic.ini")), "head")
    console.print("[green]Database is up to date.[/green]")


@app.command("create-business")
def create_business(name: str = typer.Argument(..., help="Business display name")):
    """Create a business account."""
    from .database import async_session_factory
    from .services import business_svc

    async def _create():
        async with async_session_factory() as db:
            return await business_svc.create_business(db, name)

    business = _run(_create())
    console.print(f"[green]Created business[/green] {business.name} ({business.id})")


@app.command("set-webhook")
def set_webhook(
    business_id: str = typer.Argument(..., help="Business id"),
    url: str = typer.Option("", "--url", help="Webhook URL; empty clears it"),
    secret: Optional[str] = typer.Option(None, "--secret", help="Signing secret (generated if omitted)"),
):
    """Configure where response webhooks are delivered."""
    from .database import async_session_factory
    from .services import business_svc

    async def _update():
        async with async_session_factory() as db:
            return await business_svc.update_webhook_settings(
                db, _business_id(business_id), url, secret
            )

    business = _run(_update())
    if business.webhook_url:
        console.print(f"[green]Webhook set:[/green] {business.webhook_url}")
        console.print(f"Secret: [bold]{business.webhook_secret}[/bold]")
    else:
        console.print("[yellow]Webhook cleared.[/yellow]")


@app.command("create-api-key")
def create_api_key(
    business_id: str = typer.Argument(..., help="Business id"),
    name: str = typer.Option("default", "--name", "-n", help="Key label"),
):
    """Create an API key. The token is only shown once."""
    from .database import async_session_factory
    from .services import business_svc

    async def _create():
        async with async_session_factory() as db:
            return await business_svc.create_api_key(db, _business_id(business_id), name)

    api_key, token = _run(_create())
    console.print(f"[green]Created API key[/green] {api_key.name} ({api_key.key_preview})")
    console.print(f"Token: [bold]{token}[/bold]")


@app.command("create-survey")
def create_survey(
    business_id: str = typer.Argument(..., help="Business id"),
    survey_id: str = typer.Argument(..., help="Survey slug"),
    title: str = typer.Option(..., "--title", "-t", help="Survey title"),
    description: Optional[str] = typer.Option(None, "--description", help="Survey description"),
    ttl_days: Optional[int] = typer.Option(None, "--ttl-days", help="Default link lifetime in days"),
    redirect_url: Optional[str] = typer.Option(None, "--redirect-url", help="Where to send respondents"),
    redirect_timing: str = typer.Option(
        "none", "--redirect-timing", help="none, pre_comment or post_comment"
    ),
):
    """Create a survey for a business."""
    from .database import async_session_factory
    from .services import survey_svc

    async def _create():
        async with async_session_factory() as db:
            return await survey_svc.create_survey(
                db,
                _business_id(business_id),
                survey_id,
                title,
                description=description,
                ttl_days=ttl_days,
                redirect_url=redirect_url,
                redirect_timing=redirect_timing,
            )

    survey = _run(_create())
    console.print(
        f"[green]Created survey[/green] {survey.survey_id} "
        f"(links live {survey.default_ttl_days} days)"
    )


@app.command("mint")
def mint(
    business_id: str = typer.Argument(..., help="Business id"),
    survey_id: str = typer.Argument(..., help="Survey slug"),
    subject_id: str = typer.Argument(..., help="Respondent id"),
    ttl_days: Optional[int] = typer.Option(None, "--ttl-days", help="Override link lifetime"),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON"),
):
    """Mint the eleven score links for one respondent."""
    from .database import async_session_factory
    from .errors import NotFound
    from .services import link_svc, survey_svc

    async def _mint():
        async with async_session_factory() as db:
            survey = await survey_svc.find_survey(db, _business_id(business_id), survey_id)
            if not survey:
                raise NotFound(f"Survey '{survey_id}' not found")
            return await link_svc.mint_links(db, survey, subject_id, ttl_days=ttl_days)

    result = _run(_mint())
    if json_output:
        _output_result(result.to_dict())
        return

    table = Table(title=f"Links for {subject_id} (expire {result.expires_at:%Y-%m-%d %H:%M} UTC)")
    table.add_column("Score", justify="right")
    table.add_column("URL")
    for score, url in result.links.items():
        table.add_row(score, url)
    console.print(table)


@app.command("dispatch")
def dispatch():
    """Deliver every webhook that is currently due, once."""
    from .worker import dispatcher

    processed = _run(dispatcher.run_once())
    console.print(f"Processed {processed} webhook(s).")


@app.command("worker")
def worker():
    """Run the webhook dispatcher in the foreground until interrupted."""
    import logging

    from .worker import dispatcher

    logging.basicConfig(level=settings.log_level.upper())
    console.print(
        f"[bold cyan]Dispatching webhooks every {settings.dispatch_poll_interval_seconds:g}s[/bold cyan]"
    )
    try:
        _run(dispatcher.run_forever())
    except KeyboardInterrupt:
        console.print("Stopped.")


if __name__ == "__main__":
    app()
