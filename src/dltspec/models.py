from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _Missing:
    """Sentinel for a binding that is known but has no value yet."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


class TextToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str


class PlaceholderToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["placeholder"] = "placeholder"
    key: str


Token = Annotated[Union[TextToken, PlaceholderToken], Field(discriminator="kind")]


class Section(BaseModel):
    """One markdown heading and the tokens of its body."""

    model_config = ConfigDict(frozen=True)

    heading: str
    level: int = Field(ge=1, le=6)
    body: tuple[Token, ...] = ()
    anchor: str | None = None


class Template(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    kind: Literal["template", "appendix"] = "template"
    title: str | None = None
    preamble: tuple[Token, ...] = ()
    sections: tuple[Section, ...] = ()
    declared_placeholders: frozenset[str] = frozenset()
    defaults: dict[str, str] = Field(default_factory=dict)
    prompts: dict[str, str] = Field(default_factory=dict)
    source: str | None = None

    def anchors(self) -> list[str]:
        return [section.anchor for section in self.sections if section.anchor]


class Appendix(Template):
    kind: Literal["appendix"] = "appendix"
    target_anchor: str


class NeedsInput(BaseModel):
    """A placeholder the caller still has to supply, with the question to ask."""

    key: str
    prompt: str


class ResolvedSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    heading: str
    level: int = Field(ge=1, le=6)
    body: str = ""
    anchor: str | None = None

    def heading_line(self) -> str:
        line = f"{'#' * self.level} {self.heading}"
        if self.anchor:
            line += f" {{#{self.anchor}}}"
        return line


class ResolvedDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    template_id: str
    preamble: str = ""
    sections: tuple[ResolvedSection, ...] = ()
    merged_appendices: tuple[str, ...] = ()
    target_anchor: str | None = None

    def headings(self) -> list[str]:
        return [section.heading for section in self.sections]

    def anchors(self) -> list[str]:
        return [section.anchor for section in self.sections if section.anchor]

    def anchor_index(self, anchor: str) -> int | None:
        for index, section in enumerate(self.sections):
            if section.anchor == anchor:
                return index
        return None

    def to_markdown(self) -> str:
        blocks: list[str] = []
        preamble = self.preamble.strip("\n")
        if preamble.strip():
            blocks.append(preamble.rstrip())
        for section in self.sections:
            body = section.body.strip("\n").rstrip()
            blocks.append(f"{section.heading_line()}\n\n{body}" if body else section.heading_line())
        return "\n\n".join(blocks) + "\n"
