from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowPhase(str, Enum):
    RESEARCH = "research"
    PLAN = "plan"
    APPENDIX_AUTH = "appendix_auth"
    APPENDIX_PAGINATION = "appendix_pagination"
    APPENDIX_INCREMENTAL = "appendix_incremental"
    APPENDIX_RETRY = "appendix_retry"
    IMPLEMENT = "implement"
    TEST = "test"
    COMPLETE = "complete"


APPENDIX_PHASES = (
    WorkflowPhase.APPENDIX_AUTH,
    WorkflowPhase.APPENDIX_PAGINATION,
    WorkflowPhase.APPENDIX_INCREMENTAL,
    WorkflowPhase.APPENDIX_RETRY,
)


class ComplexityFlags(BaseModel):
    has_custom_auth: bool = False
    has_mixed_pagination: bool = False
    has_compound_cursor: bool = False
    has_custom_retry_logic: bool = False


class TaskChecklistItem(BaseModel):
    phase: WorkflowPhase
    description: str
    done: bool = False


class WorkflowState(BaseModel):
    """Everything the sequencer needs between two invocations."""

    api_name: str
    phase: WorkflowPhase = WorkflowPhase.RESEARCH
    flags: ComplexityFlags = Field(default_factory=ComplexityFlags)
    scheduled: list[WorkflowPhase] = Field(default_factory=list)
    history: list[WorkflowPhase] = Field(default_factory=lambda: [WorkflowPhase.RESEARCH])
    checklist: dict[WorkflowPhase, list[TaskChecklistItem]] = Field(default_factory=dict)
    artifacts: dict[WorkflowPhase, str] = Field(default_factory=dict)
    merged_appendices: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def items(self, phase: WorkflowPhase) -> list[TaskChecklistItem]:
        return self.checklist.get(phase, [])

    def pending(self, phase: WorkflowPhase) -> list[TaskChecklistItem]:
        return [item for item in self.items(phase) if not item.done]
