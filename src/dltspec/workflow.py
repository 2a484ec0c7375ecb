from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Any, Callable

from .errors import IncompleteTasksError, PhaseTransitionError, TaskNotFoundError
from .workflow_models import (
    APPENDIX_PHASES,
    ComplexityFlags,
    TaskChecklistItem,
    WorkflowPhase,
    WorkflowState,
)

logger = logging.getLogger(__name__)

EventHook = Callable[[str, dict[str, Any]], None]


@dataclass(frozen=True, slots=True)
class PhaseSpec:
    phase: WorkflowPhase
    artifact: str
    requires_artifact: bool = False
    default_tasks: tuple[str, ...] = ()


PHASE_CATALOG: dict[WorkflowPhase, PhaseSpec] = {
    spec.phase: spec
    for spec in (
        PhaseSpec(
            WorkflowPhase.RESEARCH,
            "research document",
            requires_artifact=True,
            default_tasks=(
                "Confirm base URL and API version",
                "Document the authentication method",
                "List the endpoints to ingest",
                "Document the pagination style of each endpoint",
                "Identify incremental cursor fields",
                "Record rate limits and retry guidance",
            ),
        ),
        PhaseSpec(
            WorkflowPhase.PLAN,
            "main spec",
            requires_artifact=True,
            default_tasks=(
                "Define one resource per endpoint",
                "Choose write disposition and primary key per resource",
                "Set complexity flags for the appendices",
            ),
        ),
        PhaseSpec(
            WorkflowPhase.APPENDIX_AUTH,
            "authentication appendix",
            requires_artifact=True,
            default_tasks=("Review the custom authentication flow",),
        ),
        PhaseSpec(
            WorkflowPhase.APPENDIX_PAGINATION,
            "pagination appendix",
            requires_artifact=True,
            default_tasks=("Map every endpoint to its paginator",),
        ),
        PhaseSpec(
            WorkflowPhase.APPENDIX_INCREMENTAL,
            "incremental loading appendix",
            requires_artifact=True,
            default_tasks=("Confirm the compound cursor ordering",),
        ),
        PhaseSpec(
            WorkflowPhase.APPENDIX_RETRY,
            "retry appendix",
            requires_artifact=True,
            default_tasks=("Review retryable status codes and backoff",),
        ),
        PhaseSpec(
            WorkflowPhase.IMPLEMENT,
            "pipeline source tree",
            default_tasks=(
                "Create the pipeline module",
                "Configure the REST API client",
                "Define the resources",
                "Run the pipeline once against the destination",
            ),
        ),
        PhaseSpec(
            WorkflowPhase.TEST,
            "test report",
            default_tasks=(
                "Run the pipeline end to end",
                "Inspect the loaded tables and row counts",
            ),
        ),
        PhaseSpec(WorkflowPhase.COMPLETE, "finished pipeline"),
    )
}

# Fixed priority order of the optional appendix phases.
FLAG_APPENDICES: tuple[tuple[str, WorkflowPhase], ...] = (
    ("has_custom_auth", WorkflowPhase.APPENDIX_AUTH),
    ("has_mixed_pagination", WorkflowPhase.APPENDIX_PAGINATION),
    ("has_compound_cursor", WorkflowPhase.APPENDIX_INCREMENTAL),
    ("has_custom_retry_logic", WorkflowPhase.APPENDIX_RETRY),
)


def schedule_appendices(flags: ComplexityFlags) -> list[WorkflowPhase]:
    return [phase for flag, phase in FLAG_APPENDICES if getattr(flags, flag)]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowSequencer:
    """Drives a WorkflowState through its phases.

    The sequencer holds no state of its own beyond the ``WorkflowState`` it
    wraps, so a caller can persist the state between invocations with
    ``save_state`` and pick it up again with ``load_state``.
    """

    def __init__(
        self,
        state: WorkflowState,
        *,
        seed_checklists: bool = True,
        on_event: EventHook | None = None,
    ) -> None:
        self.state = state
        self.seed_checklists = seed_checklists
        self._on_event = on_event

    @classmethod
    def start(
        cls,
        api_name: str,
        flags: ComplexityFlags | None = None,
        *,
        seed_checklists: bool = True,
        on_event: EventHook | None = None,
    ) -> "WorkflowSequencer":
        state = WorkflowState(api_name=api_name, flags=flags or ComplexityFlags())
        sequencer = cls(state, seed_checklists=seed_checklists, on_event=on_event)
        sequencer._seed(WorkflowPhase.RESEARCH)
        return sequencer

    @property
    def phase(self) -> WorkflowPhase:
        return self.state.phase

    def _emit(self, event_type: str, payload: dict[str, Any]) -> None:
        self.state.updated_at = _now()
        if self._on_event is not None:
            self._on_event(event_type, {"api_name": self.state.api_name, **payload})

    def _seed(self, phase: WorkflowPhase) -> None:
        if not self.seed_checklists or self.state.items(phase):
            return
        tasks = PHASE_CATALOG[phase].default_tasks
        if tasks:
            self.state.checklist[phase] = [
                TaskChecklistItem(phase=phase, description=description) for description in tasks
            ]

    def _plan_left(self) -> bool:
        return self.phase not in (WorkflowPhase.RESEARCH, WorkflowPhase.PLAN)

    def appendix_schedule(self) -> list[WorkflowPhase]:
        if self._plan_left():
            return list(self.state.scheduled)
        return schedule_appendices(self.state.flags)

    def route(self) -> list[WorkflowPhase]:
        return [
            WorkflowPhase.RESEARCH,
            WorkflowPhase.PLAN,
            *self.appendix_schedule(),
            WorkflowPhase.IMPLEMENT,
            WorkflowPhase.TEST,
            WorkflowPhase.COMPLETE,
        ]

    def remaining(self) -> list[WorkflowPhase]:
        route = self.route()
        return route[route.index(self.phase) :]

    def next_phase(self) -> WorkflowPhase:
        if self.phase == WorkflowPhase.COMPLETE:
            raise PhaseTransitionError(f"Workflow for '{self.state.api_name}' is already complete")
        remaining = self.remaining()
        return remaining[1]

    def prerequisites(self, phase: WorkflowPhase) -> list[WorkflowPhase]:
        schedule = self.appendix_schedule()
        if phase == WorkflowPhase.PLAN:
            return [WorkflowPhase.RESEARCH]
        if phase in APPENDIX_PHASES:
            earlier = schedule[: schedule.index(phase)] if phase in schedule else schedule
            return [WorkflowPhase.PLAN, *earlier]
        if phase == WorkflowPhase.IMPLEMENT:
            return [WorkflowPhase.PLAN, *schedule]
        if phase == WorkflowPhase.TEST:
            return [WorkflowPhase.IMPLEMENT]
        return []

    def unfinished(self, phase: WorkflowPhase) -> list[str]:
        pending = [item.description for item in self.state.pending(phase)]
        spec = PHASE_CATALOG[phase]
        if spec.requires_artifact and phase not in self.state.artifacts:
            pending.append(f"produce the {spec.artifact}")
        return pending

    def _require_finished(self, phases: list[WorkflowPhase]) -> None:
        for phase in phases:
            pending = self.unfinished(phase)
            if pending:
                raise IncompleteTasksError(phase.value, pending)

    def enter(self, phase: WorkflowPhase | str) -> WorkflowPhase:
        target = WorkflowPhase(phase)
        expected = self.next_phase()
        if target != expected:
            raise PhaseTransitionError(
                f"Cannot enter '{target.value}' from '{self.phase.value}'; next phase is '{expected.value}'"
            )
        self._require_finished(self.prerequisites(target))

        previous = self.phase
        if previous == WorkflowPhase.PLAN:
            self.state.scheduled = schedule_appendices(self.state.flags)
        self.state.phase = target
        self.state.history.append(target)
        self._seed(target)
        logger.info("Workflow '%s': %s -> %s", self.state.api_name, previous.value, target.value)
        self._emit("phase_entered", {"from": previous.value, "to": target.value})
        return target

    def advance(self) -> WorkflowPhase:
        return self.enter(self.next_phase())

    def set_flags(self, flags: ComplexityFlags) -> None:
        if self._plan_left():
            raise PhaseTransitionError("Complexity flags are frozen once the PLAN phase is left")
        self.state.flags = flags
        self._emit("flags_set", flags.model_dump())

    def add_task(self, description: str, phase: WorkflowPhase | str | None = None) -> int:
        target = WorkflowPhase(phase) if phase is not None else self.phase
        if target == WorkflowPhase.COMPLETE or target not in self.remaining():
            raise PhaseTransitionError(
                f"Cannot add tasks to '{target.value}' while in '{self.phase.value}'"
            )
        items = self.state.checklist.setdefault(target, [])
        items.append(TaskChecklistItem(phase=target, description=description))
        self._emit("task_added", {"phase": target.value, "index": len(items) - 1})
        return len(items) - 1

    def complete_task(self, phase: WorkflowPhase | str, index: int) -> TaskChecklistItem:
        target = WorkflowPhase(phase)
        items = self.state.items(target)
        if not 0 <= index < len(items):
            raise TaskNotFoundError(f"No task #{index} in phase '{target.value}'")
        item = items[index]
        if not item.done:
            item.done = True
            self._emit("task_completed", {"phase": target.value, "index": index})
        return item

    def record_artifact(self, phase: WorkflowPhase | str, path: str | Path) -> None:
        target = WorkflowPhase(phase)
        if target != self.phase:
            raise PhaseTransitionError(
                f"Cannot record an artifact for '{target.value}' while in '{self.phase.value}'"
            )
        self.state.artifacts[target] = str(path)
        self._emit("artifact_recorded", {"phase": target.value, "path": str(path)})

    def is_merged(self, appendix_id: str) -> bool:
        return appendix_id in self.state.merged_appendices

    def record_merge(self, appendix_id: str) -> None:
        if self.is_merged(appendix_id):
            raise PhaseTransitionError(f"Appendix '{appendix_id}' was already merged")
        self.state.merged_appendices.append(appendix_id)
        self._emit("appendix_merged", {"appendix": appendix_id})

    def summary(self) -> dict[str, Any]:
        return {
            "api_name": self.state.api_name,
            "phase": self.phase.value,
            "route": [phase.value for phase in self.route()],
            "flags": self.state.flags.model_dump(),
            "checklist": {
                phase.value: [
                    {"index": idx, "description": item.description, "done": item.done}
                    for idx, item in enumerate(items)
                ]
                for phase, items in self.state.checklist.items()
            },
            "artifacts": {phase.value: path for phase, path in self.state.artifacts.items()},
            "merged_appendices": list(self.state.merged_appendices),
        }


def state_path(state_dir: Path, api_name: str) -> Path:
    return state_dir / f"{api_name}.workflow.json"


def load_state(path: Path) -> WorkflowState:
    return WorkflowState.model_validate_json(path.read_text(encoding="utf-8"))


def save_state(state: WorkflowState, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(state.model_dump_json(indent=2) + "\n", encoding="utf-8")
