"""
Helpers for serving a generated game: single-page preview and ZIP export.
"""

import io
import re
import zipfile
from typing import Iterable, Optional

from src.generation.events import GameFile

MEDIA_TYPES = {
    "html": "text/html",
    "js": "application/javascript",
    "css": "text/css",
    "json": "application/json",
    "md": "text/markdown",
}

_SCRIPT_SRC = re.compile(r"<script([^>]*?)\ssrc=[\"']([^\"']+)[\"']([^>]*)>\s*</script>", re.IGNORECASE)
_STYLESHEET = re.compile(r"<link([^>]*?)\shref=[\"']([^\"']+\.css)[\"']([^>]*)/?>", re.IGNORECASE)


def media_type_for(game_file: GameFile) -> str:
    return MEDIA_TYPES.get(game_file.type, "text/plain")


def _normalize(path: str) -> str:
    path = path.split("?", 1)[0].split("#", 1)[0]
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def find_file(files: Iterable[GameFile], path: str) -> Optional[GameFile]:
    """Look up a file by path, ignoring leading ``./`` or ``/``."""
    wanted = _normalize(path)
    for game_file in files:
        if _normalize(game_file.path) == wanted:
            return game_file
    return None


def inline_assets(html: str, files: list[GameFile]) -> str:
    """
    Replace local ``<script src>`` and stylesheet ``<link>`` references with
    the content of the matching generated files.

    References to files that were not generated (CDNs, missing files) are
    left untouched.
    """

    def _script(match: re.Match) -> str:
        game_file = find_file(files, match.group(2))
        if game_file is None:
            return match.group(0)
        attrs = f"{match.group(1)}{match.group(3)}".strip()
        opening = f"<script {attrs}>" if attrs else "<script>"
        return f"{opening}\n{game_file.content}\n</script>"

    def _stylesheet(match: re.Match) -> str:
        game_file = find_file(files, match.group(2))
        if game_file is None:
            return match.group(0)
        return f"<style>\n{game_file.content}\n</style>"

    html = _SCRIPT_SRC.sub(_script, html)
    return _STYLESHEET.sub(_stylesheet, html)


def build_zip(files: Iterable[GameFile]) -> bytes:
    """Pack game files into an in-memory ZIP archive."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as z:
        for game_file in files:
            z.writestr(_normalize(game_file.path), game_file.content)
    return buf.getvalue()
