#!/usr/bin/env python3
"""
Claw - Game Generation API CLI

Command-line interface for running the API server and administering it.
"""

import asyncio
import json

import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from src.auth.security import hash_password
from src.generation.external_api import ExternalGameAPI
from src.storage.database import Database
from src.storage.users import UserAlreadyExistsError, UserStore
from src.utilities.config import get_config
from src.utilities.utils import log_error, log_success

app = typer.Typer(
    name="claw",
    help="Claw - AI game generation API streamed over Server-Sent Events",
    add_completion=False,
)

console = Console()


# ========== HELPER FUNCTIONS ==========
def print_banner():
    """Print Claw banner"""
    banner = """
╔═══════════════════════════════════════════════════════════════╗
║                                                               ║
║      ██████╗██╗      █████╗ ██╗    ██╗                        ║
║     ██╔════╝██║     ██╔══██╗██║    ██║                        ║
║     ██║     ██║     ███████║██║ █╗ ██║                        ║
║     ██║     ██║     ██╔══██║██║███╗██║                        ║
║     ╚██████╗███████╗██║  ██║╚███╔███╔╝                        ║
║      ╚═════╝╚══════╝╚═╝  ╚═╝ ╚══╝╚══╝                         ║
║                                                               ║
║         Game Generation API                                   ║
║                                                               ║
╚═══════════════════════════════════════════════════════════════╝
    """
    console.print(banner, style="bold cyan")


def print_config_summary():
    """Print current configuration summary"""
    config = get_config(from_env=True)

    table = Table(title="Configuration", show_header=True, header_style="bold cyan")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    # Server
    table.add_row("Host", config.server.host)
    table.add_row("Port", str(config.server.port))
    table.add_row("API Prefix", config.server.api_prefix)

    # External API
    table.add_row("External API", config.external_api.base_url + config.external_api.generate_path)
    table.add_row("Read Timeout", "unbounded" if not config.external_api.read_timeout else f"{config.external_api.read_timeout}s")

    # Streaming
    table.add_row("Heartbeat Interval", f"{config.streaming.heartbeat_interval}s")
    table.add_row("Start Delay", f"{config.streaming.start_delay}s")
    table.add_row("Pending TTL", f"{config.streaming.pending_ttl}s")

    # Storage
    table.add_row("Database", config.storage.database_path)
    table.add_row("Max Attachment", f"{config.storage.max_attachment_bytes / 1024 / 1024:.1f}MB")
    table.add_row("Log Level", config.logging.level.value)
    table.add_row("Log To File", "✓" if config.logging.log_to_file else "✗")

    console.print(table)


# ========== SERVE COMMAND ==========
@app.command()
def serve(
    host: str = typer.Option(None, "--host", "-h", help="Bind address (default from config)"),
    port: int = typer.Option(None, "--port", "-p", help="Port (default from config)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """
    Start the API server.

    Examples:
        claw serve
        claw serve --port 9000 --reload
    """
    import uvicorn

    print_banner()
    config = get_config(from_env=True)

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    console.print(f"🚀 Serving on http://{bind_host}:{bind_port}", style="bold green")
    console.print(f"   Docs: http://{bind_host}:{bind_port}/docs\n", style="dim")

    uvicorn.run(
        "backend.app:app",
        host=bind_host,
        port=bind_port,
        reload=reload,
        log_level=config.logging.level.value,
    )


# ========== CONFIG COMMAND ==========
@app.command()
def config(
    show_all: bool = typer.Option(False, "--all", "-a", help="Show all configuration options"),
):
    """
    Show current configuration.
    """
    print_banner()

    if show_all:
        # Show full config as JSON
        config_dict = get_config(from_env=True).model_dump()
        config_dict["auth"]["jwt_secret"] = "***"

        json_str = json.dumps(config_dict, indent=2, default=str)
        syntax = Syntax(json_str, "json", theme="monokai", line_numbers=True)

        console.print(Panel(syntax, title="Full Configuration", border_style="cyan"))
    else:
        print_config_summary()


# ========== HEALTH COMMAND ==========
@app.command()
def health():
    """
    Check whether the external game API is reachable.
    """
    config = get_config(from_env=True)
    external_api = ExternalGameAPI(config.external_api)

    with console.status(f"[bold green]Checking {config.external_api.base_url}..."):
        healthy = asyncio.run(external_api.health_check())

    if healthy:
        log_success(f"External API is healthy ({config.external_api.base_url})")
    else:
        log_error(f"External API is unreachable ({config.external_api.base_url})")
        raise typer.Exit(1)


# ========== USER COMMANDS ==========
@app.command("create-user")
def create_user(
    username: str = typer.Argument(..., help="Display name"),
    email: str = typer.Argument(..., help="Email address used to log in"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True, help="Password"),
):
    """
    Create a user account directly in the database.
    """
    config = get_config(from_env=True)
    users = UserStore(Database(config.storage.database_path))

    try:
        user = users.create_user(username, email, hash_password(password))
    except UserAlreadyExistsError:
        log_error(f"A user with email {email} already exists")
        raise typer.Exit(1)

    log_success(f"Created user {user.username} ({user.user_id})")


# ========== MAIN ==========
@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-V", help="Show version"),
):
    """
    Claw - Game Generation API

    Turn game ideas into playable games, streamed as they are written.
    """
    if version:
        config = get_config(from_env=True)
        console.print(f"Claw v{config.version}", style="bold cyan")
        raise typer.Exit(0)

    if ctx.invoked_subcommand is None:
        # Show help if no command
        print_banner()
        console.print("Use --help to see available commands\n", style="dim")


if __name__ == "__main__":
    app()
