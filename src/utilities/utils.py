"""
Utility functions for the Claw API.
"""

import logging
import os
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from rich.console import Console

if TYPE_CHECKING:
    from .config import ClawConfig

console = Console()

logger = logging.getLogger("claw")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: "ClawConfig") -> None:
    """Setup root logging based on configuration"""
    root = logging.getLogger()

    # Clear any existing handlers
    root.handlers.clear()

    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    level = level_map[config.logging.level.value]
    root.setLevel(logging.DEBUG if config.logging.log_to_file else level)

    # Console handler
    if config.logging.log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(console_handler)

    # File handler
    if config.logging.log_to_file:
        os.makedirs(os.path.dirname(config.logging.log_file_path) or ".", exist_ok=True)
        file_handler = logging.FileHandler(config.logging.log_file_path)
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)


def log_success(message: str):
    """Print and log a success message."""
    console.print(f"[bold green]✅ {message}[/bold green]")
    logger.info(f"SUCCESS: {message}")


def log_error(message: str):
    """Print and log an error message."""
    console.print(f"[bold red]❌ {message}[/bold red]")
    logger.error(message)


def ensure_directory(path: str) -> Path:
    """
    Ensures directory exists, creates if necessary.

    Args:
        path: Directory path to ensure

    Returns:
        Path object
    """
    path_obj = Path(path)
    path_obj.mkdir(parents=True, exist_ok=True)
    return path_obj


def ensure_parent_directory(path: str) -> Optional[Path]:
    """Create the parent directory of a file path if it has one."""
    parent = Path(path).parent
    if str(parent) in ("", "."):
        return None
    return ensure_directory(str(parent))
