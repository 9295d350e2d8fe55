"""Command-line interface for Jobnick Agent."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from jobnick_agent.config import settings
from jobnick_agent.core.agent import create_jobnick_agent
from jobnick_agent.core.models import SearchSettings, Severity, StatusEvent
from jobnick_agent.memory.store import AgentStateRepository, JsonFileStateStore
from jobnick_agent.utils.logging import configure_logging

app = typer.Typer(
    name="jobnick",
    help="Jobnick Agent - autonomous job search, screening and application",
    add_completion=False,
)
console = Console()

SEVERITY_STYLES = {
    Severity.INFO: "white",
    Severity.SUCCESS: "green",
    Severity.WARNING: "yellow",
    Severity.ERROR: "bold red",
}


def print_event(event: StatusEvent) -> None:
    style = SEVERITY_STYLES.get(event.severity, "white")
    console.print(f"[dim]{event.timestamp:%H:%M:%S}[/dim] [{style}]{event.message}[/{style}]")


async def _run(options: SearchSettings, live: Optional[bool]) -> int:
    agent = create_jobnick_agent()
    queue = agent.events.subscribe()
    if live is not None:
        await agent.set_submission_mode(live)

    result = await agent.start(options)
    if not result["success"]:
        while not queue.empty():
            print_event(queue.get_nowait())
        await agent.shutdown()
        return 1

    try:
        while agent.is_running or not queue.empty():
            try:
                print_event(await asyncio.wait_for(queue.get(), timeout=1.0))
            except asyncio.TimeoutError:
                continue
    finally:
        agent.events.unsubscribe(queue)
        await agent.shutdown()

    status = await agent.get_status()
    console.print(
        f"Done: {status['applications_submitted']} application(s) this run, "
        f"{status['total_applications']} total"
    )
    return 0


@app.command()
def run(
    confidence_threshold: float = typer.Option(0.7, help="Minimum deep-screen confidence to apply"),
    max_applications: int = typer.Option(10, help="Applications before the run completes"),
    apply_delay: int = typer.Option(30, help="Seconds to pause after each application"),
    search_delay: int = typer.Option(10, help="Seconds to pause between iterations"),
    live: Optional[bool] = typer.Option(None, "--live/--dry-run", help="Submit applications or only fill forms"),
) -> None:
    """Run the job search loop in the terminal until it completes."""
    configure_logging()
    options = SearchSettings(
        confidence_threshold=confidence_threshold,
        max_applications=max_applications,
        apply_delay_seconds=apply_delay,
        search_delay_seconds=search_delay,
    )
    console.print(f"Starting job search on {settings.target_site_domain}")
    try:
        exit_code = asyncio.run(_run(options, live))
    except KeyboardInterrupt:
        console.print("Interrupted")
        exit_code = 130
    raise typer.Exit(code=exit_code)


@app.command()
def serve(
    host: str = typer.Option(settings.api_host, help="Host to bind to"),
    port: int = typer.Option(settings.api_port, help="Port to bind to"),
    reload: bool = typer.Option(settings.debug, help="Enable auto-reload"),
) -> None:
    """Start the API server."""
    import uvicorn

    console.print(f"Starting Jobnick Agent API on {host}:{port}")
    uvicorn.run(
        "jobnick_agent.api.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


@app.command("set-credential")
def set_credential(
    api_key: str = typer.Option(..., prompt=True, hide_input=True, help="Screening model API key"),
) -> None:
    """Store the screening model API key in the state file."""
    repository = AgentStateRepository(JsonFileStateStore(settings.state_file))
    asyncio.run(repository.set_credential(api_key.strip()))
    console.print(f"API key saved to {settings.state_file}")


@app.command()
def config() -> None:
    """Show current configuration."""
    table = Table(title="Jobnick Agent Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    # Show non-sensitive settings
    table.add_row("Debug Mode", str(settings.debug))
    table.add_row("Log Level", settings.log_level)
    table.add_row("Screening Model", settings.screening_model)
    table.add_row("Fallback Model", settings.openai_screening_model)
    table.add_row("Groq Key", "configured" if settings.groq_api_key else "missing")
    table.add_row("OpenAI Key", "configured" if settings.openai_api_key else "missing")
    table.add_row("Target Site", settings.target_jobs_url)
    table.add_row("Heuristic Prescreen", str(settings.heuristic_prescreen))
    table.add_row("Prescreen Batch Size", str(settings.prescreen_batch_size))
    table.add_row("Max Pages", str(settings.max_pages))
    table.add_row("Max Runtime (min)", str(settings.max_runtime_minutes))
    table.add_row("Browser Headless", str(settings.browser_headless))
    table.add_row("Max Retries", str(settings.max_retries))
    table.add_row("State File", settings.state_file)

    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    from jobnick_agent import __version__
    console.print(f"Jobnick Agent v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
