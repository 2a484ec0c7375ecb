from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from .errors import NotFoundError
from .markdown import parse_template, placeholder_keys, tokenize
from .models import Appendix, Template

logger = logging.getLogger(__name__)

BUILTIN_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


def list_placeholders(template: Template) -> set[str]:
    """Return every distinct placeholder key referenced by ``template``."""
    keys = placeholder_keys(template.preamble)
    for section in template.sections:
        keys |= placeholder_keys(tokenize(section.heading))
        keys |= placeholder_keys(section.body)
    return keys


class TemplateStore:
    """Read-only registry of templates and appendices keyed by id."""

    def __init__(self, templates: Iterable[Template] = ()) -> None:
        self._templates: dict[str, Template] = {}
        for template in templates:
            self.register(template)

    def register(self, template: Template) -> None:
        if template.id in self._templates:
            logger.debug("Template '%s' overridden by %s", template.id, template.source)
        self._templates[template.id] = template

    def load(self, template_id: str) -> Template:
        try:
            return self._templates[template_id]
        except KeyError:
            raise NotFoundError(template_id, self._templates) from None

    def load_appendix(self, template_id: str) -> Appendix:
        template = self.load(template_id)
        if not isinstance(template, Appendix):
            raise NotFoundError(template_id, self.appendix_ids())
        return template

    def list_ids(self) -> list[str]:
        return sorted(self._templates)

    def appendix_ids(self) -> list[str]:
        return sorted(tid for tid, tpl in self._templates.items() if isinstance(tpl, Appendix))

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def load_directory(self, directory: Path) -> int:
        """Register every ``*.md`` file in ``directory``; the file stem is the id."""
        count = 0
        for path in sorted(directory.glob("*.md")):
            text = path.read_text(encoding="utf-8")
            self.register(parse_template(text, path.stem, source=str(path)))
            count += 1
        logger.debug("Loaded %s template(s) from %s", count, directory)
        return count

    @classmethod
    def from_directory(cls, directory: Path) -> "TemplateStore":
        store = cls()
        store.load_directory(directory)
        return store

    @classmethod
    def builtin(cls) -> "TemplateStore":
        return cls.from_directory(BUILTIN_TEMPLATE_DIR)


def build_store(template_dir: Path | None = None) -> TemplateStore:
    """Built-in templates, overlaid by ``template_dir`` when given."""
    store = TemplateStore.builtin()
    if template_dir is not None:
        if not template_dir.is_dir():
            raise NotADirectoryError(f"Template directory not found: {template_dir}")
        store.load_directory(template_dir)
    return store
