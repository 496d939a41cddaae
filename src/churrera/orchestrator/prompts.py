"""Prompt file reading, type inference and bound-value substitution."""

from __future__ import annotations

from pathlib import Path

from churrera.orchestrator.errors import PromptFileError
from churrera.orchestrator.models import PromptType

INPUT_PLACEHOLDER = "<input>INPUT</input>"

PROMPT_TYPE_BY_EXTENSION: dict[str, PromptType] = {
    ".xml": PromptType.PML,
    ".md": PromptType.MARKDOWN,
    ".txt": PromptType.TEXT,
}


def infer_prompt_type(source_file: str) -> PromptType:
    """Infer prompt markup type from the file extension."""

    suffix = Path(source_file).suffix.lower()
    if not suffix:
        raise PromptFileError(f"Prompt file has no extension: {source_file}")
    prompt_type = PROMPT_TYPE_BY_EXTENSION.get(suffix)
    if prompt_type is None:
        supported = ", ".join(sorted(PROMPT_TYPE_BY_EXTENSION))
        raise PromptFileError(
            f"Unsupported prompt file extension {suffix!r} for {source_file} "
            f"(supported: {supported})",
        )
    return prompt_type


def resolve_prompt_path(workflow_path: str | Path, source_file: str) -> Path:
    """Resolve a prompt path relative to the directory holding the workflow file."""

    return Path(workflow_path).parent / source_file


def read_prompt_file(workflow_path: str | Path, source_file: str) -> str:
    """Read raw prompt content next to the workflow file."""

    path = resolve_prompt_path(workflow_path, source_file)
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise PromptFileError(f"Prompt file not found: {path}") from exc
    except OSError as exc:
        raise PromptFileError(f"Cannot read prompt file {path}: {exc}") from exc


def substitute_bound_value(text: str, value: str) -> str:
    """Replace the input placeholder with the bound value."""

    return text.replace(INPUT_PLACEHOLDER, f"<input>{value}</input>")


class PassthroughConverter:
    """Markup converter that sends prompt files verbatim."""

    def to_text(self, content: str, prompt_type: PromptType) -> str:
        del prompt_type
        return content
