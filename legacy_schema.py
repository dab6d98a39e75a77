"""
Schemas for the JSON files written by the legacy skin manager.

The legacy tool never versioned its files, so every model here is lenient:
unknown keys are ignored and every field has a default.  Two formats are
covered:

Configuration
-------------
``local/configuration`` holds global settings, ``home/<env>/configuration``
the per-environment ones.  Both are flat JSON objects:

    {
        "style_theme": "dark",
        "uuid": "5f0c...",
        "main_window_position_x": 10,
        "main_window_position_y": 20,
        "main_window_position_width": 1200,
        "main_window_position_height": 800,
        "ocd_window_name": "Endfield",
        "ocd_window_width": 1920,
        "ocd_window_height": 1080
    }

    {
        "GamePath": "D:/Games/Endfield/Endfield.exe",
        "game_launch_argument": "-popupwindow"
    }

Mod index
---------
``home/<env>/modsIndex/index_*.json``:

    {
        "mods": {
            "<sha>": {
                "object": "Chen",
                "type": "7z",
                "name": "Summer outfit",
                "author": "someone",
                "grading": "G",
                "explain": "free text",
                "tags": ["outfit", "summer"]
            }
        }
    }
"""

from __future__ import annotations

import json
import logging
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stores import is_safe_sha

_log = logging.getLogger(__name__)


class WindowPosition(BaseModel):
    x: int = 0
    y: int = 0
    width: int = 1200
    height: int = 800


class OnScreenDisplaySettings(BaseModel):
    window_name: str | None = None
    width: int = 1920
    height: int = 1080


class LegacyConfiguration(BaseModel):
    """Merged view of the global and per-environment configuration files."""

    style_theme: str | None = None
    uuid: str | None = None
    window_position: WindowPosition | None = None
    on_screen_display: OnScreenDisplaySettings | None = None
    game_path: str | None = None
    game_launch_args: str | None = None


class LegacyModEntry(BaseModel):
    """One mod as described by a legacy ``index_*.json`` file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sha: str
    object_name: str = Field(default="Unknown", alias="object")
    archive_type: str | None = Field(default=None, alias="type")
    name: str = "Unknown"
    author: str = ""
    grading: str = "G"
    explain: str = ""
    tags: list[str] = Field(default_factory=list)

    @field_validator("sha")
    @classmethod
    def _check_sha(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Mod entry has an empty sha")
        # the sha names the archive file and the preview folder
        if not is_safe_sha(v):
            raise ValueError(f"Mod sha {v!r} is not a plain file name")
        return v

    @field_validator("object_name", "name", mode="before")
    @classmethod
    def _default_unknown(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return "Unknown"
        return v

    @field_validator("author", "explain", mode="before")
    @classmethod
    def _default_empty(cls, v):
        return "" if v is None else v

    @field_validator("archive_type", mode="before")
    @classmethod
    def _blank_type(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, v):
        # Older index files stored tags as one comma-separated string.
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v


def _json_object(data: bytes | str) -> dict:
    if isinstance(data, bytes):
        data = data.decode("utf-8-sig")
    elif data.startswith("\ufeff"):
        data = data[1:]
    doc = json.loads(data)
    if not isinstance(doc, dict):
        raise ValueError(f"Expected a JSON object, got {type(doc).__name__}")
    return doc


def parse_global_configuration(data: bytes | str) -> dict:
    """Extract the global settings from ``local/configuration``.

    Returns a partial dict of :class:`LegacyConfiguration` fields.
    Raises ``json.JSONDecodeError`` / ``ValueError`` on malformed input.
    """
    doc = _json_object(data)
    fields: dict = {
        "style_theme": doc.get("style_theme"),
        "uuid": doc.get("uuid"),
    }
    if doc.get("main_window_position_x") is not None:
        fields["window_position"] = WindowPosition(
            x=doc.get("main_window_position_x") or 0,
            y=doc.get("main_window_position_y") or 0,
            width=doc.get("main_window_position_width") or 1200,
            height=doc.get("main_window_position_height") or 800,
        )
    if doc.get("ocd_window_name") is not None:
        fields["on_screen_display"] = OnScreenDisplaySettings(
            window_name=doc.get("ocd_window_name"),
            width=doc.get("ocd_window_width") or 1920,
            height=doc.get("ocd_window_height") or 1080,
        )
    return fields


def parse_environment_configuration(data: bytes | str) -> dict:
    """Extract the game settings from ``home/<env>/configuration``."""
    doc = _json_object(data)
    return {
        "game_path": doc.get("GamePath"),
        "game_launch_args": doc.get("game_launch_argument"),
    }


def parse_mod_index(
    data: bytes | str, on_skip: Callable[[str], None] | None = None
) -> list[LegacyModEntry]:
    """Parse one ``index_*.json`` file into mod entries, in file order.

    Raises ``json.JSONDecodeError`` or ``ValueError`` if the file itself is
    unusable.  Individual entries that fail validation are skipped so one
    bad record does not hide the rest of the index.  Each skip is reported to
    ``on_skip``, or logged when no callback is given.
    """
    doc = _json_object(data)
    mods = doc.get("mods")
    if not isinstance(mods, dict):
        raise ValueError("No 'mods' object in index file")

    def skip(msg: str):
        if on_skip is None:
            _log.warning(msg)
        else:
            on_skip(msg)

    entries: list[LegacyModEntry] = []
    for sha, raw in mods.items():
        if not isinstance(raw, dict):
            skip(f"Skipping malformed index entry {sha!r}")
            continue
        try:
            entries.append(LegacyModEntry.model_validate({**raw, "sha": sha}))
        except ValueError as exc:
            skip(f"Skipping invalid index entry {sha!r}: {exc}")
    return entries
