import json

import pytest

from dltspec_mcp.config import settings
from dltspec_mcp.errors import OutputDirNotAllowedError
from dltspec_mcp.server import (
    advance,
    complete_task,
    get_template,
    get_workflow_status,
    list_templates,
    merge_appendix,
    read_document,
    render_research,
    render_spec,
)

DATE = "2026-01-26"
NO_FLAGS = dict(
    has_custom_auth=False,
    has_mixed_pagination=False,
    has_compound_cursor=False,
    has_custom_retry_logic=False,
)


@pytest.fixture(autouse=True)
def allowed_root(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "DLTSPEC_MCP_ALLOWED_ROOT", tmp_path)
    monkeypatch.delenv("DLTSPEC_TEMPLATE_DIR", raising=False)
    monkeypatch.delenv("DLTSPEC_ENABLE_EVENT_LOG", raising=False)
    monkeypatch.setenv("DLTSPEC_SEED_CHECKLISTS", "0")
    return tmp_path


def _research(output_dir="github"):
    return json.loads(
        render_research(api_name="github", bindings={"docs_url": "https://docs"}, output_dir=output_dir, date=DATE)
    )


def _spec(**flags):
    values = {**NO_FLAGS, **flags}
    return json.loads(
        render_spec(
            api_name="github",
            bindings={"base_url": "https://api.github.com"},
            output_dir="github",
            date=DATE,
            **values,
        )
    )


def test_list_templates_tool():
    templates = {item["id"]: item for item in json.loads(list_templates())}
    assert templates["appendix_retry"]["target_anchor"] == "retry"
    assert "max_attempts" not in templates["appendix_retry"]["required"]
    assert templates["research"]["required"] == ["api_name", "date", "docs_url"]


def test_render_research_needs_input():
    result = json.loads(render_research(api_name="github", bindings={}, output_dir="github", date=DATE))
    assert result["status"] == "needs_input"
    assert result["template_id"] == "research"
    assert [item["key"] for item in result["needs_input"]] == ["docs_url"]


def test_render_research_success(allowed_root):
    result = _research()
    assert result["status"] == "success"
    assert result["next_phase"] == "plan"
    path = allowed_root / "github" / "research" / f"{DATE}_001_research_github.md"
    assert result["document"]["path"] == str(path.resolve())
    assert len(result["document"]["hash_sha256"]) == 64


def test_render_spec_before_research_fails():
    result = _spec()
    assert result["status"] == "failed"
    assert "research" in result["error_message"]


def test_merge_flow_and_status():
    _research()
    assert _spec(has_mixed_pagination=True)["next_phase"] == "appendix_pagination"

    merged = json.loads(merge_appendix(api_name="github", appendix="pagination", bindings={}, output_dir="github"))
    assert merged["status"] == "success"
    assert merged["merged_appendices"] == ["appendix_pagination"]

    status = json.loads(get_workflow_status(api_name="github", output_dir="github"))
    assert status["phase"] == "appendix_pagination"
    assert status["pending"] == []

    moved = json.loads(advance(api_name="github", output_dir="github"))
    assert moved == {"status": "success", "phase": "implement"}


def test_advance_reports_failure():
    result = json.loads(advance(api_name="github", output_dir="github"))
    assert result["status"] == "failed"
    assert "produce the research document" in result["error_message"]


def test_complete_task_tool(monkeypatch):
    monkeypatch.setenv("DLTSPEC_SEED_CHECKLISTS", "1")
    status = json.loads(complete_task(api_name="github", index=0, phase=None, output_dir="github"))
    research_items = status["checklist"]["research"]
    assert research_items[0]["done"] is True
    assert research_items[1]["done"] is False


def test_read_document_chunks():
    result = _research()
    path = result["document"]["path"]

    chunk = json.loads(read_document(path=path, offset=0, limit=10))
    assert chunk["content"] == "# API rese"
    assert chunk["truncated"] is True

    with pytest.raises(FileNotFoundError):
        read_document(path="github/missing.md", offset=0, limit=10)


def test_output_dir_outside_root_rejected():
    with pytest.raises(OutputDirNotAllowedError):
        render_research(api_name="github", bindings={}, output_dir="/etc", date=DATE)


def test_template_resource():
    source = get_template("appendix_pagination")
    assert source.startswith("---\nkind: appendix")
    with pytest.raises(ValueError):
        get_template("unknown")
