from __future__ import annotations

from typing import Iterable


class DltSpecError(Exception):
    """Base class for errors surfaced by the document pipeline."""

    exit_code = 1


class NotFoundError(DltSpecError):
    """Raised when no template is registered under the requested id."""

    exit_code = 3

    def __init__(self, template_id: str, available: Iterable[str] = ()) -> None:
        self.template_id = template_id
        self.available = sorted(available)
        message = f"Template '{template_id}' not found"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class MissingBindingError(DltSpecError):
    """Raised when placeholders referenced by a template have no binding."""

    exit_code = 4

    def __init__(self, template_id: str, keys: Iterable[str], needs_input: list | None = None) -> None:
        self.template_id = template_id
        self.keys = sorted(set(keys))
        self.needs_input = list(needs_input or [])
        super().__init__(
            f"Template '{template_id}' has unresolved placeholders: {', '.join(self.keys)}"
        )


class AnchorNotFoundError(DltSpecError):
    """Raised when an appendix targets an anchor the host document lacks."""

    exit_code = 5

    def __init__(self, anchor: str, available: Iterable[str] = ()) -> None:
        self.anchor = anchor
        self.available = list(available)
        message = f"Anchor '{anchor}' not found in host document"
        if self.available:
            message += f" (anchors: {', '.join(self.available)})"
        super().__init__(message)


class IncompleteTasksError(DltSpecError):
    """Raised when the workflow tries to leave a phase with unfinished work."""

    exit_code = 6

    def __init__(self, phase: str, pending: Iterable[str]) -> None:
        self.phase = phase
        self.pending = list(pending)
        super().__init__(
            f"Phase '{phase}' has unfinished items: " + "; ".join(self.pending)
        )


class PhaseTransitionError(DltSpecError):
    """Raised when a phase is entered out of order."""

    exit_code = 7


class TaskNotFoundError(DltSpecError):
    """Raised when a checklist item index does not exist."""

    exit_code = 9


class TemplateSyntaxError(DltSpecError):
    """Raised when a template file cannot be parsed."""

    exit_code = 8
