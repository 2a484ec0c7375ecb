"""Template-driven research and spec generation for dlt REST API pipelines."""

from .appender import append
from .config import AppConfig
from .errors import (
    AnchorNotFoundError,
    DltSpecError,
    IncompleteTasksError,
    MissingBindingError,
    NotFoundError,
    PhaseTransitionError,
    TaskNotFoundError,
    TemplateSyntaxError,
)
from .models import MISSING, Appendix, NeedsInput, ResolvedDocument, Section, Template
from .resolver import collect_needs_input, resolve
from .store import TemplateStore, list_placeholders
from .workflow import WorkflowSequencer, schedule_appendices
from .workflow_models import ComplexityFlags, TaskChecklistItem, WorkflowPhase, WorkflowState

__all__ = [
    "AnchorNotFoundError",
    "AppConfig",
    "Appendix",
    "ComplexityFlags",
    "DltSpecError",
    "IncompleteTasksError",
    "MISSING",
    "MissingBindingError",
    "NeedsInput",
    "NotFoundError",
    "PhaseTransitionError",
    "ResolvedDocument",
    "Section",
    "TaskChecklistItem",
    "TaskNotFoundError",
    "Template",
    "TemplateStore",
    "TemplateSyntaxError",
    "WorkflowPhase",
    "WorkflowSequencer",
    "WorkflowState",
    "append",
    "collect_needs_input",
    "list_placeholders",
    "resolve",
    "schedule_appendices",
]
