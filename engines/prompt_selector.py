from __future__ import annotations

from typing import Optional

from concept_catalog import CONCEPT_CATALOG, ConceptCatalogRegistry
from prompts.content_prompts import ContentPrompt, get_prompt

DEFAULT_LANGUAGE = "programming"


def template_for(category: str) -> ContentPrompt:
    try:
        return get_prompt(category)
    except KeyError:
        raise ValueError(f"Unknown category: {category}") from None


def select_prompt(
    category: str,
    concept_name: str,
    language: Optional[str] = None,
    *,
    catalog: Optional[ConceptCatalogRegistry] = None,
) -> str:
    """Build the explanation prompt for ``concept_name``.

    Known concepts get their sub-topic enumeration; anything else only gets the
    generic structure of the chosen template.
    """

    template = template_for(category)
    registry = catalog or CONCEPT_CATALOG
    outline = registry.outline_for(concept_name)
    subtopics = outline.subtopics if outline else ()
    return template.render(
        topic=concept_name.strip(),
        language=(language or "").strip() or DEFAULT_LANGUAGE,
        subtopics=subtopics,
    )
