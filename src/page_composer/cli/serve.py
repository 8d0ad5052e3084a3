import typer
from rich.console import Console

serve_app = typer.Typer(help="Start servers.")
console = Console()


@serve_app.command("api")
def api(
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:
    """Start the FastAPI REST API server."""
    import uvicorn

    from page_composer.api.app import create_app
    from page_composer.settings import Settings, configure_logging

    settings = Settings.from_env()
    configure_logging(settings)
    app = create_app()
    console.print(f"[green]Starting API server on {host}:{port} ({settings.store_backend} store)[/green]")
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())
