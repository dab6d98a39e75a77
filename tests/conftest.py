"""
Shared fixtures and helpers for the migrator test suite.

``legacy_root`` builds a small but complete legacy installation:

    Endfield (active)  3 mods, aaa111 and bbb222 with a preview, ccc333 without
                       classification/Characters (5 objects), Weapons (3 objects)
                       thumbnail/_redirection.ini with one explicit + one wildcard line
    Other              1 mod, ddd444
"""

import json
import zipfile
from pathlib import Path

import pytest

ENDFIELD_MODS = {
    "aaa111": {"object": "Chen", "name": "Summer outfit", "author": "kiri", "tags": ["outfit"]},
    "bbb222": {"object": "Amiya", "type": "7z", "name": "Winter coat", "grading": "R"},
    "ccc333": {"object": "Sword", "type": "rar", "name": "Glow blade", "tags": "weapon, glow"},
}
OTHER_MODS = {
    "ddd444": {"object": "Bow", "type": "7z", "name": "Long bow"},
}
CHARACTERS = ["Chen", "Amiya", "Texas", "Lappland", "Exusiai"]
WEAPONS = ["Sword", "Bow", "Staff"]
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def write_index(env_dir: Path, mods: dict, name: str = "index_1.json") -> Path:
    return write_json(env_dir / "modsIndex" / name, {"mods": mods})


def make_zip_archive(path: Path, members: dict[str, bytes]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return path


def write_bytes(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def build_legacy_install(root: Path) -> Path:
    write_json(
        root / "local" / "configuration",
        {
            "user_env": "Endfield",
            "style_theme": "dark",
            "uuid": "5f0c1d",
            "main_window_position_x": 10,
            "main_window_position_y": 20,
            "main_window_position_width": 1280,
            "main_window_position_height": 720,
            "ocd_window_name": "Endfield",
        },
    )

    endfield = root / "home" / "Endfield"
    write_json(
        endfield / "configuration",
        {"GamePath": "D:\\Games\\Endfield\\Endfield.exe", "game_launch_argument": "-popupwindow"},
    )
    write_index(endfield, ENDFIELD_MODS)

    classification = endfield / "classification"
    classification.mkdir(parents=True)
    (classification / "Characters").write_text("\n".join(CHARACTERS) + "\n\n", encoding="utf-8")
    (classification / "Weapons").write_text("\n".join(WEAPONS), encoding="utf-8")

    thumbnail = endfield / "thumbnail"
    for name in ("chen_alt.png", "Amiya.png", "Texas.png"):
        write_bytes(thumbnail / "chars" / name, PNG_BYTES)
    (thumbnail / "_redirection.ini").write_text(
        "; object thumbnails\nChen = chars\\chen_alt.png\n[*] chars\\*\n", encoding="utf-8"
    )

    other = root / "home" / "Other"
    write_index(other, OTHER_MODS)

    resources = root / "resources"
    make_zip_archive(resources / "mods" / "aaa111", {"Chen/mod.ini": b"[TextureOverride]\n"})
    write_bytes(resources / "mods" / "bbb222", b"7z-archive-bytes" * 64)
    write_bytes(resources / "mods" / "ccc333", b"rar-archive-bytes" * 32)
    write_bytes(resources / "mods" / "ddd444", b"other-archive" * 16)
    write_bytes(resources / "preview" / "aaa111.png", PNG_BYTES)
    write_bytes(resources / "preview" / "bbb222" / "front.jpg", b"\xff\xd8\xff" + b"\x00" * 40)
    write_bytes(resources / "cache" / "aaa111" / "extracted.bin", b"x" * 100)
    return root


@pytest.fixture
def legacy_root(tmp_path):
    """A legacy installation under tmp_path/legacy."""
    return build_legacy_install(tmp_path / "legacy")


@pytest.fixture
def dest(tmp_path):
    """An empty, existing profile data directory."""
    path = tmp_path / "profile"
    path.mkdir()
    return path
