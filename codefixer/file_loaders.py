"""
codefixer/file_loaders.py
-----------------------------------------------------------------------------
Load the prompt text files shipped in ``codefixer/prompts/``.

Prompts live on disk rather than in Python string literals so they can be
edited and reviewed as plain text.  Paths resolve relative to this file, so
the loaders work regardless of the working directory uvicorn starts in.

Exports
-------
load_prompt(name) -> str
    Read a named prompt file, stripped of surrounding whitespace.

load_directive_template() -> string.Template
    The fix directive, with ``$user_command`` and ``$project_files``
    placeholders.

list_prompt_names() -> list[str]
    Sorted stems of all ``.txt`` files in ``codefixer/prompts/``.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from string import Template

_HERE = Path(__file__).parent
PROMPTS_DIR = _HERE / "prompts"

SYSTEM_INSTRUCTION = "system_instruction"
FIX_DIRECTIVE = "fix_directive"
GENERAL_CLEANUP = "general_cleanup"


def load_prompt(name: str) -> str:
    """
    Load a named prompt text file from ``codefixer/prompts/``.

    Parameters
    ----------
    name : Bare filename without extension (e.g. ``"system_instruction"``).

    Returns
    -------
    str : The prompt text, stripped of surrounding whitespace.

    Raises
    ------
    FileNotFoundError
        If the file doesn't exist (indicates a broken install).
    """
    path = PROMPTS_DIR / f"{name}.txt"
    if not path.exists():
        raise FileNotFoundError(f"Prompt '{name}' not found at {path}")
    return path.read_text(encoding="utf-8").strip()


@lru_cache(maxsize=1)
def load_directive_template() -> Template:
    """Return the fix directive as a :class:`string.Template`."""
    return Template(load_prompt(FIX_DIRECTIVE))


def list_prompt_names() -> list[str]:
    """Return a sorted list of prompt names (without ``.txt`` extension)."""
    return sorted(p.stem for p in PROMPTS_DIR.glob("*.txt"))
