"""
Prompt Management Module

Loads suggestion prompts from the text files next to this module. Each
feature has a `<feature>_system.txt` (used verbatim as the system message)
and a `<feature>_user.txt` (a str.format template for the request data).
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from rapport.llm.client import PromptMessage

# Get the prompts directory
PROMPTS_DIR = Path(__file__).parent


class PromptLoader:
    """Load and cache prompt templates from files"""

    def __init__(self, prompts_dir: Path = PROMPTS_DIR):
        self.prompts_dir = prompts_dir
        self._cache: dict[str, str] = {}

    def load_prompt(self, prompt_name: str) -> str:
        """
        Load a prompt template from file.

        Args:
            prompt_name: Name of the prompt file (without .txt extension)

        Raises:
            FileNotFoundError: If no such prompt file exists
        """
        if prompt_name not in self._cache:
            prompt_path = self.prompts_dir / f"{prompt_name}.txt"
            if not prompt_path.exists():
                raise FileNotFoundError(f"Prompt file not found: {prompt_path}")
            self._cache[prompt_name] = prompt_path.read_text(encoding="utf-8").strip()

        return self._cache[prompt_name]

    def build_messages(self, feature: str, **kwargs: object) -> list[PromptMessage]:
        """System + user messages for a feature, with kwargs injected into the user template."""
        return [
            PromptMessage(role="system", content=self.load_prompt(f"{feature}_system")),
            PromptMessage(role="user", content=self.load_prompt(f"{feature}_user").format(**kwargs)),
        ]

    def reload(self) -> None:
        """Clear cache and reload prompts from disk"""
        self._cache.clear()


def detail_lines(pairs: Iterable[tuple[str, object]]) -> str:
    """
    Render optional "Label: value" lines, skipping empty values.

    Every rendered line ends with a newline so templates can place the
    result directly before the next fixed line.
    """
    lines = [f"{label}: {value}\n" for label, value in pairs if value not in (None, "", [], ())]
    return "".join(lines)
