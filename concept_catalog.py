"""Concept catalog configuration loader."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple


class ConceptCatalogError(ValueError):
    """Raised when ``concept_catalog.json`` contains invalid data."""


REQUIRED_CATEGORIES = ("structured", "advanced")


@dataclass(frozen=True)
class ConceptOutline:
    """Ordered sub-topics every explanation of a concept has to cover."""

    name: str
    aliases: Tuple[str, ...]
    subtopics: Tuple[str, ...]


def _normalize(name: str) -> str:
    return " ".join(str(name).lower().split())


class ConceptCatalogRegistry:
    """Load onboarding catalogs and sub-topic outlines from ``concept_catalog.json``."""

    def __init__(self, path: str | Path | None = None) -> None:
        base_path = Path(__file__).resolve().parent
        self.path = Path(path) if path is not None else base_path / "concept_catalog.json"
        self.version = ""
        self._onboarding: Dict[str, Tuple[str, ...]] = {}
        self._outlines: List[ConceptOutline] = []
        self._by_name: Dict[str, ConceptOutline] = {}
        self.reload()

    # ------------------------------------------------------------------
    def reload(self) -> None:
        """Reload the catalog from disk and validate the structure."""

        if not self.path.exists():
            raise FileNotFoundError(f"Concept catalog file not found: {self.path}")

        with self.path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)

        if not isinstance(raw, dict):
            raise ConceptCatalogError("Concept catalog must contain a JSON object")

        version = str(raw.get("version", "")).strip()
        if not version:
            raise ConceptCatalogError("Concept catalog is missing a non-empty 'version'")

        onboarding = self._parse_onboarding(raw.get("onboarding"))
        outlines, by_name = self._parse_outlines(raw.get("outlines", []))

        self.version = version
        self._onboarding = onboarding
        self._outlines = outlines
        self._by_name = by_name

    @staticmethod
    def _parse_onboarding(raw: object) -> Dict[str, Tuple[str, ...]]:
        if not isinstance(raw, dict):
            raise ConceptCatalogError("'onboarding' must map categories to concept lists")

        parsed: Dict[str, Tuple[str, ...]] = {}
        for category in REQUIRED_CATEGORIES:
            names = raw.get(category)
            if not isinstance(names, list) or not names:
                raise ConceptCatalogError(f"Onboarding catalog for '{category}' must be a non-empty list")
            cleaned = [str(name).strip() for name in names]
            if any(not name for name in cleaned):
                raise ConceptCatalogError(f"Onboarding catalog for '{category}' contains a blank name")
            seen = {_normalize(name) for name in cleaned}
            if len(seen) != len(cleaned):
                raise ConceptCatalogError(f"Onboarding catalog for '{category}' contains duplicates")
            parsed[category] = tuple(cleaned)
        return parsed

    @staticmethod
    def _parse_outlines(raw: object) -> Tuple[List[ConceptOutline], Dict[str, ConceptOutline]]:
        if not isinstance(raw, list):
            raise ConceptCatalogError("'outlines' must be a JSON list")

        outlines: List[ConceptOutline] = []
        by_name: Dict[str, ConceptOutline] = {}
        for idx, entry in enumerate(raw, start=1):
            if not isinstance(entry, dict):
                raise ConceptCatalogError(f"Outline #{idx} must be a JSON object")
            name = str(entry.get("name", "")).strip()
            if not name:
                raise ConceptCatalogError(f"Outline #{idx} is missing a non-empty 'name'")
            subtopics = entry.get("subtopics")
            if not isinstance(subtopics, list) or not subtopics:
                raise ConceptCatalogError(f"Outline {name} must list at least one sub-topic")
            aliases = entry.get("aliases", [])
            if not isinstance(aliases, list):
                raise ConceptCatalogError(f"Outline {name} has non-list 'aliases'")

            outline = ConceptOutline(
                name=name,
                aliases=tuple(str(alias).strip() for alias in aliases if str(alias).strip()),
                subtopics=tuple(str(topic).strip() for topic in subtopics),
            )
            for key in (name, *outline.aliases):
                normalized = _normalize(key)
                if normalized in by_name:
                    raise ConceptCatalogError(f"Duplicate outline name or alias detected: {key}")
                by_name[normalized] = outline
            outlines.append(outline)
        return outlines, by_name

    # ------------------------------------------------------------------
    def categories(self) -> Sequence[str]:
        return tuple(self._onboarding)

    def onboarding_concepts(self, category: str) -> Sequence[str]:
        """Return the ordered onboarding catalog for ``category``."""

        try:
            return self._onboarding[category]
        except KeyError:
            raise ValueError(f"Unknown category: {category}") from None

    def outline_for(self, concept_name: str) -> Optional[ConceptOutline]:
        """Return the outline registered for a concept name or alias, if any."""

        return self._by_name.get(_normalize(concept_name))

    @property
    def outlines(self) -> List[ConceptOutline]:
        return list(self._outlines)

    def __iter__(self) -> Iterable[ConceptOutline]:
        return iter(self._outlines)


CONCEPT_CATALOG = ConceptCatalogRegistry()
"""Singleton registry used throughout the application."""
