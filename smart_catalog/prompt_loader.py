from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)


def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt file as UTF-8 text and strip BOM and trailing whitespace.
    Inputs/Outputs: Input is a Path to the prompt file; output is the decoded string.
    Side Effects / State: None; pure function reading the filesystem.
    Dependencies: Uses Path.read_text/read_bytes; used by PromptLibrary.
    Failure Modes: UnicodeDecodeError triggers a fallback decode with errors ignored;
        a missing file raises FileNotFoundError.
    If Removed: The classifier and response builder have no instructions to send.
    Testing Notes: Validate BOM-stripping and fallback decoding on non-UTF8 files.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        text = prompt_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        logger.warning("prompt %s is not valid UTF-8; dropping undecodable bytes", prompt_path)
        text = prompt_path.read_bytes().decode("utf-8", errors="ignore")
    return text.lstrip("\ufeff").rstrip()


class PromptLibrary:
    """Named prompts from one directory, read once and cached."""

    def __init__(self, prompts_dir: Path) -> None:
        self._prompts_dir = prompts_dir
        self._cache: Dict[str, str] = {}

    def get(self, name: str) -> str:
        if name not in self._cache:
            self._cache[name] = load_prompt(self._prompts_dir / f"{name}.txt")
        return self._cache[name]
