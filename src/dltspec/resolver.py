from __future__ import annotations

import logging
from typing import Any, Mapping

from .errors import MissingBindingError
from .markdown import tokenize
from .models import (
    MISSING,
    NeedsInput,
    PlaceholderToken,
    ResolvedDocument,
    ResolvedSection,
    Template,
    Token,
)
from .store import list_placeholders

logger = logging.getLogger(__name__)

Bindings = Mapping[str, Any]


def _is_missing(value: Any) -> bool:
    return value is None or value is MISSING


def effective_bindings(template: Template, bindings: Bindings) -> dict[str, Any]:
    """Template defaults overlaid by the caller's bindings."""
    merged: dict[str, Any] = dict(template.defaults)
    for key, value in bindings.items():
        if _is_missing(value) and key in merged:
            continue
        merged[key] = value
    return merged


def _prompt_for(template: Template, key: str) -> str:
    return template.prompts.get(key) or f"Provide a value for '{key}'"


def collect_needs_input(template: Template, bindings: Bindings) -> list[NeedsInput]:
    """Every referenced key without a usable binding, with the question to ask for it."""
    values = effective_bindings(template, bindings)
    missing = sorted(key for key in list_placeholders(template) if _is_missing(values.get(key)))
    return [NeedsInput(key=key, prompt=_prompt_for(template, key)) for key in missing]


def _render(tokens: tuple[Token, ...], values: Mapping[str, Any]) -> str:
    parts: list[str] = []
    for token in tokens:
        if isinstance(token, PlaceholderToken):
            # Substituted values are literal; they are never scanned again.
            parts.append(str(values[token.key]))
        else:
            parts.append(token.text)
    return "".join(parts)


def resolve(template: Template, bindings: Bindings) -> ResolvedDocument:
    """Substitute every placeholder of ``template``.

    All missing keys are reported together in one ``MissingBindingError``.
    Only referenced placeholders are required; declared keys that the template
    never references, and bindings nobody asked for, are logged and ignored.
    """
    needs_input = collect_needs_input(template, bindings)
    if needs_input:
        raise MissingBindingError(template.id, [item.key for item in needs_input], needs_input)

    referenced = list_placeholders(template)
    unused_declared = sorted(template.declared_placeholders - referenced)
    if unused_declared:
        logger.warning(
            "Template '%s' declares unused placeholders: %s",
            template.id,
            ", ".join(unused_declared),
        )
    unused_bindings = sorted(set(bindings) - referenced)
    if unused_bindings:
        logger.debug("Bindings not referenced by '%s': %s", template.id, ", ".join(unused_bindings))

    values = effective_bindings(template, bindings)
    sections = tuple(
        ResolvedSection(
            heading=_render(tokenize(section.heading), values),
            level=section.level,
            body=_render(section.body, values),
            anchor=section.anchor,
        )
        for section in template.sections
    )
    return ResolvedDocument(
        template_id=template.id,
        preamble=_render(template.preamble, values),
        sections=sections,
        target_anchor=getattr(template, "target_anchor", None),
    )


def resolve_text(text: str, bindings: Bindings, *, name: str = "<inline>") -> str:
    """Resolve a one-line pattern such as an output path."""
    tokens = tokenize(text)
    missing = sorted(
        {t.key for t in tokens if isinstance(t, PlaceholderToken) and _is_missing(bindings.get(t.key))}
    )
    if missing:
        raise MissingBindingError(
            name, missing, [NeedsInput(key=key, prompt=f"Provide a value for '{key}'") for key in missing]
        )
    return _render(tokens, bindings)
