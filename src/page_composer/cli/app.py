import typer

from page_composer.cli.config import config_app
from page_composer.cli.db import db_app
from page_composer.cli.serve import serve_app

app = typer.Typer(
    name="page-composer",
    help="Page Composer CLI: manage versioned page slot configurations.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)

app.add_typer(db_app, name="db")
app.add_typer(config_app, name="config")
app.add_typer(serve_app, name="serve")


def main() -> None:
    app()
