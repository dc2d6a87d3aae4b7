"""Utilities for loading the concept explanation prompt templates."""
from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, Mapping, Sequence

_PROMPT_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class ContentPrompt:
    """One explanation template, selected by learning category."""

    id: str
    variant: str
    prompt_version: str
    label: str
    description: str
    template: str
    subtopic_header: str
    subtopic_footer: str

    @property
    def normalized_variant(self) -> str:
        return self.variant.lower()

    def render(self, topic: str, language: str, subtopics: Sequence[str] = ()) -> str:
        if subtopics:
            lines = ["", self.subtopic_header]
            lines.extend(f"- {entry}" for entry in subtopics)
            lines.append(self.subtopic_footer)
            lines.append("")
            block = "\n".join(lines)
        else:
            block = ""
        return self.template.format(topic=topic, language=language, subtopic_block=block)


def _load_prompt(path: Path) -> ContentPrompt:
    payload = json.loads(path.read_text(encoding="utf-8"))
    required = {
        "id",
        "variant",
        "prompt_version",
        "label",
        "description",
        "template",
        "subtopic_header",
        "subtopic_footer",
    }
    missing = sorted(required - payload.keys())
    if missing:
        raise ValueError(f"Prompt file {path.name} missing keys: {', '.join(missing)}")
    template = payload["template"]
    if isinstance(template, list):
        template = "\n".join(str(line) for line in template)
    if "{topic}" not in template or "{subtopic_block}" not in template:
        raise ValueError(f"Prompt file {path.name} template lacks {{topic}} or {{subtopic_block}}")
    return ContentPrompt(
        id=str(payload["id"]),
        variant=str(payload["variant"]),
        prompt_version=str(payload["prompt_version"]),
        label=str(payload["label"]),
        description=str(payload["description"]),
        template=str(template),
        subtopic_header=str(payload["subtopic_header"]),
        subtopic_footer=str(payload["subtopic_footer"]),
    )


def _iter_prompt_files(directory: Path) -> Iterable[Path]:
    for path in sorted(directory.glob("*.json")):
        if path.is_file():
            yield path


@lru_cache(maxsize=1)
def load_prompts(directory: Path | None = None) -> Mapping[str, ContentPrompt]:
    base_dir = Path(directory) if directory else _PROMPT_DIR
    prompts: Dict[str, ContentPrompt] = {}
    for file_path in _iter_prompt_files(base_dir):
        prompt = _load_prompt(file_path)
        key = prompt.normalized_variant
        if key in prompts:
            raise ValueError(f"Duplicate content prompt variant detected: {prompt.variant}")
        prompts[key] = prompt
    if not prompts:
        raise RuntimeError(f"No content prompt definitions found in {base_dir}")
    return prompts


def get_prompt(variant: str) -> ContentPrompt:
    prompts = load_prompts()
    key = str(variant).lower()
    if key not in prompts:
        raise KeyError(f"Unknown content prompt variant '{variant}'. Available: {', '.join(sorted(prompts))}")
    return prompts[key]


__all__ = ["ContentPrompt", "load_prompts", "get_prompt"]
