import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from dltspec.config import AppConfig
from dltspec.errors import DltSpecError, MissingBindingError
from dltspec.pipeline import DocumentArtifacts, normalize_api_name, run_appendix, run_research, run_spec
from dltspec.store import build_store, list_placeholders
from dltspec.workflow_models import ComplexityFlags

from .config import settings
from .hashing import sha256_file
from .models import DocumentRef, DocumentResult, TemplateInfo
from .security import validate_output_dir

logger = logging.getLogger(__name__)


def config_for(output_dir: str) -> AppConfig:
    """AppConfig rooted at a validated output directory."""
    root = validate_output_dir(Path(output_dir))
    return AppConfig(
        output_dir=root,
        state_dir=root / settings.DLTSPEC_MCP_STATE_DIRNAME,
    )


def _document_ref(path: Path) -> Optional[DocumentRef]:
    if not path.exists():
        return None
    return DocumentRef(
        path=str(path.absolute()),
        size_bytes=path.stat().st_size,
        hash_sha256=sha256_file(path),
    )


def _run_safely(api_name: str, step: Callable[[str], DocumentArtifacts]) -> DocumentResult:
    """Turn pipeline errors into result objects; "ask the user" becomes needs_input."""
    name = api_name
    try:
        name = normalize_api_name(api_name)
        artifacts = step(name)
    except MissingBindingError as exc:
        logger.info("Missing bindings for %s: %s", exc.template_id, ", ".join(exc.keys))
        return DocumentResult(
            status="needs_input",
            api_name=name,
            template_id=exc.template_id,
            needs_input=exc.needs_input,
            error_message=str(exc),
        )
    except (DltSpecError, ValueError) as exc:
        logger.error("Document step failed for %s: %s", name, exc)
        return DocumentResult(status="failed", api_name=name, error_message=str(exc))

    return DocumentResult(
        status="success",
        api_name=name,
        phase=artifacts.phase,
        template_id=artifacts.template_id,
        document=_document_ref(Path(artifacts.path)),
        merged_appendices=artifacts.merged_appendices,
        next_phase=artifacts.next_phase,
    )


def safe_render_research(
    api_name: str,
    output_dir: str,
    bindings: Optional[Dict[str, str]] = None,
    date: Optional[str] = None,
) -> DocumentResult:
    config = config_for(output_dir)
    return _run_safely(
        api_name,
        lambda name: run_research(name, config, bindings=bindings, date=date),
    )


def safe_render_spec(
    api_name: str,
    output_dir: str,
    bindings: Optional[Dict[str, str]] = None,
    flags: Optional[ComplexityFlags] = None,
    date: Optional[str] = None,
) -> DocumentResult:
    config = config_for(output_dir)
    return _run_safely(
        api_name,
        lambda name: run_spec(name, config, flags=flags, bindings=bindings, date=date),
    )


def safe_merge_appendix(
    api_name: str,
    appendix: str,
    output_dir: str,
    bindings: Optional[Dict[str, str]] = None,
    date: Optional[str] = None,
) -> DocumentResult:
    config = config_for(output_dir)
    return _run_safely(
        api_name,
        lambda name: run_appendix(name, appendix, config, bindings=bindings, date=date),
    )


def describe_templates(template_dir: Optional[Path] = None) -> List[TemplateInfo]:
    store = build_store(template_dir)
    infos: List[TemplateInfo] = []
    for template_id in store.list_ids():
        template = store.load(template_id)
        referenced = list_placeholders(template)
        infos.append(
            TemplateInfo(
                id=template.id,
                kind=template.kind,
                title=template.title,
                target_anchor=getattr(template, "target_anchor", None),
                placeholders=sorted(referenced),
                required=sorted(referenced - set(template.defaults)),
            )
        )
    return infos


def template_source(template_id: str, template_dir: Optional[Path] = None) -> str:
    template = build_store(template_dir).load(template_id)
    if not template.source:
        raise ValueError(f"Template {template_id} has no source file")
    return Path(template.source).read_text(encoding="utf-8")
