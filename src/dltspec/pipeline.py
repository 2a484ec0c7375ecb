from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date as date_type, datetime, timezone
import logging
from pathlib import Path
import re
from typing import Any, Mapping

from .appender import append
from .config import AppConfig
from .errors import NotFoundError, PhaseTransitionError
from .events import WorkflowEventLog
from .markdown import parse_document
from .resolver import resolve, resolve_text
from .store import TemplateStore, build_store
from .workflow import EventHook, WorkflowSequencer, load_state, save_state, state_path
from .workflow_models import ComplexityFlags, WorkflowPhase

logger = logging.getLogger(__name__)

RESEARCH_PATH_PATTERN = "research/{date}_001_research_{api_name}.md"
SPEC_PATH_PATTERN = "specs/{date}_011_spec_dlt_rest_client_{api_name}.md"

RESEARCH_TEMPLATE_ID = "research"
SPEC_TEMPLATE_ID = "spec_main"

APPENDIX_PHASES_BY_NAME: dict[str, WorkflowPhase] = {
    "auth": WorkflowPhase.APPENDIX_AUTH,
    "pagination": WorkflowPhase.APPENDIX_PAGINATION,
    "incremental": WorkflowPhase.APPENDIX_INCREMENTAL,
    "retry": WorkflowPhase.APPENDIX_RETRY,
}

_STAMP_PREFIX = "<!-- Generated:"
_STAMP_RE = re.compile(r"^<!-- Generated: .* -->\s*$", re.MULTILINE)
_API_NAME_RE = re.compile(r"[^a-z0-9]+")


@dataclass(slots=True)
class DocumentArtifacts:
    """A document written (or rewritten) by one pipeline step."""

    path: str
    template_id: str
    phase: str
    merged_appendices: list[str] = field(default_factory=list)
    next_phase: str | None = None


def _timestamp_comment() -> str:
    now = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
    return f"{_STAMP_PREFIX} {now} UTC -->"


def _write_text(path: Path, content: str, stamp: bool) -> None:
    text = content.rstrip()
    if stamp:
        text += "\n\n" + _timestamp_comment()
    path.write_text(text + "\n", encoding="utf-8")


def normalize_api_name(api_name: str) -> str:
    slug = _API_NAME_RE.sub("_", api_name.strip().lower()).strip("_")
    if not slug:
        raise ValueError(f"Invalid API name: {api_name!r}")
    return slug


def build_bindings(
    api_name: str,
    config: AppConfig,
    *,
    date: str | None = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Bindings every template can rely on, overlaid by caller-supplied values."""
    bindings: dict[str, Any] = {
        "api_name": api_name,
        "date": date or date_type.today().isoformat(),
        "destination": config.destination,
        "pipeline_name": f"{api_name}_pipeline",
        "source_name": f"{api_name}_source",
    }
    bindings.update(extra or {})
    return bindings


def resolve_output_path(
    pattern: str,
    bindings: Mapping[str, Any],
    config: AppConfig,
    override: Path | None = None,
) -> Path:
    relative = override if override is not None else Path(resolve_text(pattern, bindings, name=pattern))
    return config.ensure_output_path(relative)


def _event_hook(config: AppConfig) -> EventHook | None:
    if not config.enable_event_log:
        return None
    log = WorkflowEventLog(config.state_dir / "events.jsonl")

    def _hook(event_type: str, payload: dict[str, Any]) -> None:
        log.record(payload["api_name"], event_type, payload)

    return _hook


def open_workflow(config: AppConfig, api_name: str) -> WorkflowSequencer:
    """Load the persisted workflow for ``api_name`` or start a new one."""
    path = state_path(config.state_dir, api_name)
    hook = _event_hook(config)
    if path.exists():
        logger.debug("Loading workflow state from %s", path)
        return WorkflowSequencer(load_state(path), seed_checklists=config.seed_checklists, on_event=hook)
    logger.debug("Starting new workflow for %s", api_name)
    return WorkflowSequencer.start(api_name, seed_checklists=config.seed_checklists, on_event=hook)


def save_workflow(config: AppConfig, sequencer: WorkflowSequencer) -> Path:
    path = state_path(config.state_dir, sequencer.state.api_name)
    save_state(sequencer.state, path)
    return path


def _store(config: AppConfig, store: TemplateStore | None) -> TemplateStore:
    return store if store is not None else build_store(config.template_dir)


def _next_phase(sequencer: WorkflowSequencer) -> str | None:
    if sequencer.phase == WorkflowPhase.COMPLETE:
        return None
    return sequencer.next_phase().value


def run_research(
    api_name: str,
    config: AppConfig,
    *,
    bindings: Mapping[str, Any] | None = None,
    output: Path | None = None,
    date: str | None = None,
    stamp: bool = False,
    store: TemplateStore | None = None,
) -> DocumentArtifacts:
    sequencer = open_workflow(config, api_name)
    if sequencer.phase != WorkflowPhase.RESEARCH:
        raise PhaseTransitionError(
            f"Research document can only be written during 'research' (current: '{sequencer.phase.value}')"
        )

    values = build_bindings(api_name, config, date=date, extra=bindings)
    document = resolve(_store(config, store).load(RESEARCH_TEMPLATE_ID), values)
    path = resolve_output_path(RESEARCH_PATH_PATTERN, values, config, output)
    logger.info("Writing research document to %s", path)
    _write_text(path, document.to_markdown(), stamp)

    sequencer.record_artifact(WorkflowPhase.RESEARCH, path)
    save_workflow(config, sequencer)
    return DocumentArtifacts(
        path=str(path),
        template_id=RESEARCH_TEMPLATE_ID,
        phase=WorkflowPhase.RESEARCH.value,
        next_phase=_next_phase(sequencer),
    )


def run_spec(
    api_name: str,
    config: AppConfig,
    *,
    flags: ComplexityFlags | None = None,
    bindings: Mapping[str, Any] | None = None,
    output: Path | None = None,
    date: str | None = None,
    stamp: bool = False,
    store: TemplateStore | None = None,
) -> DocumentArtifacts:
    sequencer = open_workflow(config, api_name)
    if sequencer.phase == WorkflowPhase.RESEARCH:
        sequencer.enter(WorkflowPhase.PLAN)
    elif sequencer.phase != WorkflowPhase.PLAN:
        raise PhaseTransitionError(
            f"Main spec can only be written during 'plan' (current: '{sequencer.phase.value}')"
        )
    if flags is not None:
        sequencer.set_flags(flags)

    scheduled = sequencer.appendix_schedule()
    extra: dict[str, Any] = {
        "research_path": sequencer.state.artifacts.get(WorkflowPhase.RESEARCH, "(none)"),
        "scheduled_appendices": ", ".join(phase.value for phase in scheduled) or "none",
    }
    extra.update(bindings or {})
    values = build_bindings(api_name, config, date=date, extra=extra)

    document = resolve(_store(config, store).load(SPEC_TEMPLATE_ID), values)
    path = resolve_output_path(SPEC_PATH_PATTERN, values, config, output)
    logger.info("Writing main spec to %s", path)
    _write_text(path, document.to_markdown(), stamp)

    sequencer.record_artifact(WorkflowPhase.PLAN, path)
    save_workflow(config, sequencer)
    return DocumentArtifacts(
        path=str(path),
        template_id=SPEC_TEMPLATE_ID,
        phase=WorkflowPhase.PLAN.value,
        next_phase=_next_phase(sequencer),
    )


def run_appendix(
    api_name: str,
    appendix_name: str,
    config: AppConfig,
    *,
    bindings: Mapping[str, Any] | None = None,
    date: str | None = None,
    stamp: bool = False,
    store: TemplateStore | None = None,
) -> DocumentArtifacts:
    """Merge one appendix into the main spec written during PLAN."""
    phase = APPENDIX_PHASES_BY_NAME.get(appendix_name)
    if phase is None:
        raise NotFoundError(appendix_name, APPENDIX_PHASES_BY_NAME)
    template_id = phase.value

    sequencer = open_workflow(config, api_name)
    if sequencer.phase != phase:
        sequencer.enter(phase)
    if sequencer.is_merged(template_id):
        raise PhaseTransitionError(f"Appendix '{template_id}' was already merged for '{api_name}'")

    spec_path = Path(sequencer.state.artifacts[WorkflowPhase.PLAN])
    host_text = _STAMP_RE.sub("", spec_path.read_text(encoding="utf-8"))
    host = parse_document(
        host_text,
        SPEC_TEMPLATE_ID,
        merged_appendices=tuple(sequencer.state.merged_appendices),
    )

    appendix = _store(config, store).load_appendix(template_id)
    values = build_bindings(api_name, config, date=date, extra=bindings)
    merged = append(host, resolve(appendix, values), appendix.target_anchor)
    logger.info("Merging %s into %s at '%s'", template_id, spec_path, appendix.target_anchor)
    _write_text(spec_path, merged.to_markdown(), stamp)

    sequencer.record_merge(template_id)
    sequencer.record_artifact(phase, spec_path)
    save_workflow(config, sequencer)
    return DocumentArtifacts(
        path=str(spec_path),
        template_id=template_id,
        phase=phase.value,
        merged_appendices=list(merged.merged_appendices),
        next_phase=_next_phase(sequencer),
    )


def advance_workflow(
    api_name: str,
    config: AppConfig,
    target: WorkflowPhase | str | None = None,
) -> WorkflowPhase:
    sequencer = open_workflow(config, api_name)
    phase = sequencer.enter(target) if target is not None else sequencer.advance()
    save_workflow(config, sequencer)
    return phase


def add_workflow_task(
    api_name: str,
    config: AppConfig,
    description: str,
    phase: WorkflowPhase | str | None = None,
) -> int:
    sequencer = open_workflow(config, api_name)
    index = sequencer.add_task(description, phase)
    save_workflow(config, sequencer)
    return index


def complete_workflow_task(
    api_name: str,
    config: AppConfig,
    index: int,
    phase: WorkflowPhase | str | None = None,
) -> None:
    sequencer = open_workflow(config, api_name)
    sequencer.complete_task(phase if phase is not None else sequencer.phase, index)
    save_workflow(config, sequencer)


def workflow_status(api_name: str, config: AppConfig) -> dict[str, Any]:
    sequencer = open_workflow(config, api_name)
    status = sequencer.summary()
    status["next_phase"] = _next_phase(sequencer)
    status["pending"] = sequencer.unfinished(sequencer.phase)
    return status
