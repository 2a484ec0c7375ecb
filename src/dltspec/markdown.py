from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Any

import yaml

from .errors import TemplateSyntaxError
from .models import (
    Appendix,
    PlaceholderToken,
    ResolvedDocument,
    ResolvedSection,
    Section,
    Template,
    TextToken,
    Token,
)

# "{{" escapes a literal brace and "}}" closes it; any other brace text is left alone.
_TOKEN_RE = re.compile(r"\{\{|\}\}|\{([A-Za-z_][A-Za-z0-9_.-]*)\}")
_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.*?)[ \t]*$")
_ANCHOR_RE = re.compile(r"[ \t]*\{#([A-Za-z0-9_.:-]+)\}$")
_FENCE_RE = re.compile(r"^[ ]{0,3}(`{3,}|~{3,})")
_FRONT_MATTER_DELIM = "---"


@dataclass(slots=True)
class RawSection:
    level: int
    heading: str
    anchor: str | None = None
    lines: list[str] = field(default_factory=list)

    @property
    def body(self) -> str:
        return "\n".join(self.lines)


def tokenize(text: str) -> tuple[Token, ...]:
    """Split ``text`` into text and placeholder tokens."""
    tokens: list[Token] = []
    buffer: list[str] = []
    pos = 0

    open_escapes = 0

    def _flush() -> None:
        chunk = "".join(buffer)
        buffer.clear()
        if chunk:
            tokens.append(TextToken(text=chunk))

    while True:
        match = _TOKEN_RE.search(text, pos)
        if match is None:
            break
        buffer.append(text[pos : match.start()])
        literal = match.group(0)
        if literal == "{{":
            open_escapes += 1
            buffer.append("{")
        elif literal == "}}" and open_escapes:
            open_escapes -= 1
            buffer.append("}")
        elif literal == "}}":
            # Unpaired: keep one brace and rescan from the second.
            buffer.append("}")
            pos = match.start() + 1
            continue
        else:
            _flush()
            tokens.append(PlaceholderToken(key=match.group(1)))
        pos = match.end()
    buffer.append(text[pos:])
    _flush()
    return tuple(tokens)


def placeholder_keys(tokens: tuple[Token, ...]) -> set[str]:
    return {token.key for token in tokens if isinstance(token, PlaceholderToken)}


def _split_heading(text: str) -> tuple[str, str | None]:
    match = _ANCHOR_RE.search(text)
    if not match:
        return text, None
    return text[: match.start()].rstrip(), match.group(1)


def split_sections(text: str) -> tuple[str, list[RawSection]]:
    """Return ``(preamble, sections)``; headings inside code fences stay body text."""
    preamble: list[str] = []
    sections: list[RawSection] = []
    fence: str | None = None

    for line in text.splitlines():
        fence_match = _FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(1)
            if fence is None:
                fence = marker
            elif marker[0] == fence[0] and len(marker) >= len(fence) and not line.strip()[len(marker):].strip():
                fence = None
        elif fence is None:
            heading = _HEADING_RE.match(line)
            if heading:
                title, anchor = _split_heading(heading.group(2))
                sections.append(RawSection(level=len(heading.group(1)), heading=title, anchor=anchor))
                continue
        if sections:
            sections[-1].lines.append(line)
        else:
            preamble.append(line)

    return "\n".join(preamble), sections


def split_front_matter(text: str, source: str = "<template>") -> tuple[dict[str, Any], str]:
    """Return ``(meta, body)``; the block between the ``---`` lines is YAML."""
    lines = text.splitlines()
    if not lines or lines[0].strip() != _FRONT_MATTER_DELIM:
        return {}, text
    for index, line in enumerate(lines[1:], start=1):
        if line.strip() == _FRONT_MATTER_DELIM:
            break
    else:
        raise TemplateSyntaxError(f"{source}: front matter is not terminated by '{_FRONT_MATTER_DELIM}'")

    try:
        meta = yaml.safe_load("\n".join(lines[1:index])) or {}
    except yaml.YAMLError as exc:
        raise TemplateSyntaxError(f"{source}: invalid front matter: {exc}") from exc
    if not isinstance(meta, dict):
        raise TemplateSyntaxError(f"{source}: front matter must be a mapping, got {type(meta).__name__}")
    return meta, "\n".join(lines[index + 1 :])


def _prefixed(meta: dict[str, Any], prefix: str) -> dict[str, str]:
    """Collect ``prefix.key`` entries and a nested ``prefix:`` mapping as strings."""
    values: dict[str, Any] = {}
    nested = meta.get(prefix)
    if isinstance(nested, dict):
        values.update(nested)
    dotted = f"{prefix}."
    values.update({str(key)[len(dotted) :]: value for key, value in meta.items() if str(key).startswith(dotted)})
    return {str(key): str(value) for key, value in values.items() if value is not None}


def _declared(raw: Any, origin: str) -> frozenset[str]:
    if isinstance(raw, str):
        parts = raw.split(",")
    elif isinstance(raw, list):
        parts = [str(part) for part in raw]
    else:
        raise TemplateSyntaxError(f"{origin}: 'placeholders' must be a list or a comma-separated string")
    return frozenset(part.strip() for part in parts if part.strip())


def parse_template(text: str, template_id: str, source: str | None = None) -> Template:
    """Build a Template (or Appendix) from markdown with optional front matter."""
    origin = source or template_id
    meta, body = split_front_matter(text, origin)
    preamble, raw_sections = split_sections(body)

    sections = tuple(
        Section(heading=raw.heading, level=raw.level, body=tokenize(raw.body), anchor=raw.anchor)
        for raw in raw_sections
    )
    preamble_tokens = tokenize(preamble)

    declared_raw = meta.get("placeholders")
    if declared_raw is not None:
        declared = _declared(declared_raw, origin)
    else:
        declared = frozenset(
            placeholder_keys(preamble_tokens).union(
                *(placeholder_keys(tokenize(s.heading)) | placeholder_keys(s.body) for s in sections)
            )
        )

    fields = dict(
        id=template_id,
        title=str(meta["title"]) if meta.get("title") else None,
        preamble=preamble_tokens,
        sections=sections,
        declared_placeholders=declared,
        defaults=_prefixed(meta, "default"),
        prompts=_prefixed(meta, "prompt"),
        source=source,
    )

    kind = meta.get("kind", "appendix" if "anchor" in meta else "template")
    if kind == "appendix":
        anchor = meta.get("anchor")
        if not anchor:
            raise TemplateSyntaxError(f"{origin}: appendix templates need an 'anchor' entry")
        return Appendix(target_anchor=str(anchor), **fields)
    if kind != "template":
        raise TemplateSyntaxError(f"{origin}: unknown template kind {kind!r}")
    return Template(**fields)


def parse_document(text: str, template_id: str, merged_appendices: tuple[str, ...] = ()) -> ResolvedDocument:
    """Re-read an already resolved markdown document (no placeholder lexing)."""
    preamble, raw_sections = split_sections(text)
    return ResolvedDocument(
        template_id=template_id,
        preamble=preamble,
        sections=tuple(
            ResolvedSection(heading=raw.heading, level=raw.level, body=raw.body, anchor=raw.anchor)
            for raw in raw_sections
        ),
        merged_appendices=merged_appendices,
    )
