import json
import logging
import sys
from pathlib import Path
from typing import Dict, Literal, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from dltspec.errors import DltSpecError
from dltspec.pipeline import (
    advance_workflow,
    complete_workflow_task,
    normalize_api_name,
    workflow_status,
)
from dltspec.workflow_models import ComplexityFlags

from .config import settings
from .hashing import read_text_chunk
from .models import ReadDocumentResult
from .security import validate_output_dir
from .tools import (
    config_for,
    describe_templates,
    safe_merge_appendix,
    safe_render_research,
    safe_render_spec,
    template_source,
)

# Configure logging to stderr to avoid interfering with JSON-RPC on stdout
logging.basicConfig(
    stream=sys.stderr,
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

mcp = FastMCP("dltspec_mcp")

AppendixName = Literal["auth", "pagination", "incremental", "retry"]


@mcp.tool(
    name="dltspec_list_templates",
    annotations={
        "title": "List Templates",
        "readOnlyHint": True,
        "idempotentHint": True
    }
)
def list_templates() -> str:
    """
    Lists the available document templates and appendices.

    Returns:
        str: JSON list of templates with their placeholders and, for
        appendices, the anchor they merge into.
    """
    return json.dumps([info.model_dump() for info in describe_templates()], indent=2)


@mcp.tool(
    name="dltspec_render_research",
    annotations={
        "title": "Write Research Document",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
def render_research(
    api_name: str = Field(..., description="API name used in file names, e.g. 'github'"),
    bindings: Dict[str, str] = Field(default_factory=dict, description="Placeholder values, e.g. {'docs_url': '...'}"),
    output_dir: str = Field(".", description="Output directory below the allowed root"),
    date: Optional[str] = Field(None, description="YYYY-MM-DD date for file names (default: today)"),
) -> str:
    """
    Writes research/YYYY-MM-DD_001_research_{api_name}.md.

    When placeholders are missing the result has status "needs_input" and
    lists every missing key with the question to ask the user.

    Returns:
        str: JSON-formatted DocumentResult.
    """
    logger.info("Rendering research document for %s", api_name)
    result = safe_render_research(api_name, output_dir, bindings=bindings, date=date)
    return result.model_dump_json(indent=2)


@mcp.tool(
    name="dltspec_render_spec",
    annotations={
        "title": "Write Main Spec",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
def render_spec(
    api_name: str = Field(..., description="API name used in file names, e.g. 'github'"),
    bindings: Dict[str, str] = Field(default_factory=dict, description="Placeholder values, e.g. {'base_url': '...'}"),
    has_custom_auth: bool = Field(False, description="Schedule the authentication appendix"),
    has_mixed_pagination: bool = Field(False, description="Schedule the pagination appendix"),
    has_compound_cursor: bool = Field(False, description="Schedule the incremental loading appendix"),
    has_custom_retry_logic: bool = Field(False, description="Schedule the retry appendix"),
    output_dir: str = Field(".", description="Output directory below the allowed root"),
    date: Optional[str] = Field(None, description="YYYY-MM-DD date for file names (default: today)"),
) -> str:
    """
    Writes specs/YYYY-MM-DD_011_spec_dlt_rest_client_{api_name}.md and
    schedules the appendices selected by the complexity flags.

    Returns:
        str: JSON-formatted DocumentResult.
    """
    logger.info("Rendering main spec for %s", api_name)
    flags = ComplexityFlags(
        has_custom_auth=has_custom_auth,
        has_mixed_pagination=has_mixed_pagination,
        has_compound_cursor=has_compound_cursor,
        has_custom_retry_logic=has_custom_retry_logic,
    )
    result = safe_render_spec(api_name, output_dir, bindings=bindings, flags=flags, date=date)
    return result.model_dump_json(indent=2)


@mcp.tool(
    name="dltspec_merge_appendix",
    annotations={
        "title": "Merge Appendix Into Spec",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": False
    }
)
def merge_appendix(
    api_name: str = Field(..., description="API name of an existing workflow"),
    appendix: AppendixName = Field(..., description="Appendix to merge: auth, pagination, incremental or retry"),
    bindings: Dict[str, str] = Field(default_factory=dict, description="Placeholder values for the appendix"),
    output_dir: str = Field(".", description="Output directory below the allowed root"),
) -> str:
    """
    Merges a scheduled appendix into the main spec at its anchor section.

    Returns:
        str: JSON-formatted DocumentResult.
    """
    logger.info("Merging %s appendix for %s", appendix, api_name)
    result = safe_merge_appendix(api_name, appendix, output_dir, bindings=bindings)
    return result.model_dump_json(indent=2)


@mcp.tool(
    name="dltspec_workflow_status",
    annotations={
        "title": "Workflow Status",
        "readOnlyHint": True,
        "idempotentHint": True
    }
)
def get_workflow_status(
    api_name: str = Field(..., description="API name of the workflow"),
    output_dir: str = Field(".", description="Output directory below the allowed root"),
) -> str:
    """
    Returns the current phase, route, checklist and artifacts of a workflow.

    Returns:
        str: JSON object.
    """
    status = workflow_status(normalize_api_name(api_name), config_for(output_dir))
    return json.dumps(status, indent=2)


@mcp.tool(
    name="dltspec_complete_task",
    annotations={
        "title": "Complete Checklist Item",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True
    }
)
def complete_task(
    api_name: str = Field(..., description="API name of the workflow"),
    index: int = Field(..., description="Checklist item index", ge=0),
    phase: Optional[str] = Field(None, description="Phase of the item (default: current phase)"),
    output_dir: str = Field(".", description="Output directory below the allowed root"),
) -> str:
    """
    Marks a checklist item as done. Items never go back to not done.

    Returns:
        str: JSON workflow status after the change.
    """
    name = normalize_api_name(api_name)
    config = config_for(output_dir)
    complete_workflow_task(name, config, index, phase)
    return json.dumps(workflow_status(name, config), indent=2)


@mcp.tool(
    name="dltspec_advance_workflow",
    annotations={
        "title": "Advance Workflow",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False
    }
)
def advance(
    api_name: str = Field(..., description="API name of the workflow"),
    output_dir: str = Field(".", description="Output directory below the allowed root"),
) -> str:
    """
    Moves the workflow to its next phase. Fails when the current phase still
    has unfinished checklist items or a missing document.

    Returns:
        str: JSON object with either the new phase or the error.
    """
    name = normalize_api_name(api_name)
    try:
        phase = advance_workflow(name, config_for(output_dir))
    except DltSpecError as exc:
        logger.warning("Cannot advance %s: %s", name, exc)
        return json.dumps({"status": "failed", "error_message": str(exc)}, indent=2)
    return json.dumps({"status": "success", "phase": phase.value}, indent=2)


@mcp.tool(
    name="dltspec_read_document",
    annotations={
        "title": "Read Document Content",
        "readOnlyHint": True,
        "idempotentHint": True
    }
)
def read_document(
    path: str = Field(..., description="Document path below the allowed root"),
    offset: int = Field(0, description="Character offset to start reading from", ge=0),
    limit: int = Field(10000, description="Maximum number of characters to read", ge=1, le=100000),
) -> str:
    """
    Reads a generated document in chunks.

    Returns:
        str: JSON-formatted ReadDocumentResult.
    """
    document = validate_output_dir(Path(path))
    if not document.is_file():
        raise FileNotFoundError(f"Document not found at {document}")
    effective_limit = min(limit, settings.DLTSPEC_MCP_RESOURCE_MAX_CHARS)
    content, total = read_text_chunk(document, offset, effective_limit)
    res = ReadDocumentResult(
        content=content,
        truncated=(offset + len(content) < total),
        total_chars=total,
    )
    return res.model_dump_json(indent=2)


@mcp.resource("dltspec://templates/{template_id}")
def get_template(template_id: str) -> str:
    """
    Raw markdown source of a template, front matter included.
    """
    try:
        return template_source(template_id)
    except Exception as e:
        logger.error(f"Resource access failed: {e}")
        raise ValueError(f"Failed to read template: {e}")

def main():
    """Entry point for the MCP server."""
    mcp.run()

if __name__ == "__main__":
    main()
