import json

import pytest

from dltspec.config import AppConfig
from dltspec.errors import (
    AnchorNotFoundError,
    IncompleteTasksError,
    MissingBindingError,
    NotFoundError,
    PhaseTransitionError,
)
from dltspec.markdown import parse_document
from dltspec.pipeline import (
    advance_workflow,
    build_bindings,
    normalize_api_name,
    run_appendix,
    run_research,
    run_spec,
    workflow_status,
)
from dltspec.workflow_models import ComplexityFlags, WorkflowPhase

DATE = "2026-01-26"


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        output_dir=tmp_path / "out",
        destination="duckdb",
        template_dir=None,
        state_dir=tmp_path / "state",
        seed_checklists=False,
        enable_event_log=False,
    )


def _research(config, api="github"):
    return run_research(api, config, bindings={"docs_url": "https://docs.github.com/rest"}, date=DATE)


def _spec(config, api="github", **flags):
    return run_spec(
        api,
        config,
        flags=ComplexityFlags(**flags),
        bindings={"base_url": "https://api.github.com"},
        date=DATE,
    )


def test_normalize_api_name():
    assert normalize_api_name(" GitHub API ") == "github_api"
    with pytest.raises(ValueError):
        normalize_api_name("!!!")


def test_build_bindings_defaults_and_overrides(config):
    bindings = build_bindings("github", config, date=DATE, extra={"destination": "bigquery"})
    assert bindings["pipeline_name"] == "github_pipeline"
    assert bindings["source_name"] == "github_source"
    assert bindings["destination"] == "bigquery"
    assert bindings["date"] == DATE


def test_research_written_to_conventional_path(config):
    artifacts = _research(config)

    expected = config.output_dir / "research" / f"{DATE}_001_research_github.md"
    assert artifacts.path == str(expected)
    assert artifacts.phase == "research"
    assert artifacts.next_phase == "plan"
    text = expected.read_text(encoding="utf-8")
    assert text.startswith("# API research: github")
    assert "https://docs.github.com/rest" in text
    assert "{" not in text.replace("{#", "")


def test_research_requires_docs_url(config):
    with pytest.raises(MissingBindingError) as excinfo:
        run_research("github", config, date=DATE)
    assert excinfo.value.keys == ["docs_url"]
    assert excinfo.value.needs_input[0].prompt.startswith("Where is the API reference")
    assert not (config.state_dir / "github.workflow.json").exists()


def test_spec_enters_plan_and_records_artifact(config):
    research = _research(config)
    artifacts = _spec(config)

    path = config.output_dir / "specs" / f"{DATE}_011_spec_dlt_rest_client_github.md"
    assert artifacts.path == str(path)
    assert artifacts.phase == "plan"
    assert artifacts.next_phase == "implement"
    text = path.read_text(encoding="utf-8")
    assert 'destination="duckdb"' in text
    assert '"base_url": "https://api.github.com"' in text
    assert research.path in text
    assert "Scheduled appendices: none." in text

    status = workflow_status("github", config)
    assert status["phase"] == "plan"
    assert status["artifacts"]["plan"] == str(path)


def test_spec_before_research_document_fails(config):
    with pytest.raises(IncompleteTasksError):
        _spec(config)


def test_pagination_appendix_merges_after_pagination_section(config):
    _research(config)
    _spec(config, has_mixed_pagination=True)

    artifacts = run_appendix("github", "pagination", config)

    assert artifacts.merged_appendices == ["appendix_pagination"]
    assert artifacts.next_phase == "implement"
    document = parse_document(
        (config.output_dir / "specs" / f"{DATE}_011_spec_dlt_rest_client_github.md").read_text(encoding="utf-8"),
        "spec_main",
    )
    headings = document.headings()
    index = headings.index("Pagination")
    assert headings[index + 1] == "Complex Pagination Details"
    assert headings[index + 2] == "Incremental Loading"
    assert document.sections[index + 1].level == 3

    status = workflow_status("github", config)
    assert status["phase"] == "appendix_pagination"
    assert status["merged_appendices"] == ["appendix_pagination"]


def test_unscheduled_appendix_is_rejected(config):
    _research(config)
    _spec(config)
    with pytest.raises(PhaseTransitionError):
        run_appendix("github", "auth", config)


def test_appendix_merged_once(config):
    _research(config)
    _spec(config, has_custom_retry_logic=True)
    run_appendix("github", "retry", config)
    with pytest.raises(PhaseTransitionError):
        run_appendix("github", "retry", config)


def test_unknown_appendix_name(config):
    with pytest.raises(NotFoundError):
        run_appendix("github", "webhooks", config)


def test_stamp_is_not_duplicated_by_merges(config):
    _research(config)
    run_spec(
        "github",
        config,
        flags=ComplexityFlags(has_custom_auth=True, has_mixed_pagination=True),
        bindings={"base_url": "https://api.github.com"},
        date=DATE,
        stamp=True,
    )
    run_appendix("github", "auth", config, stamp=True)
    advance_workflow("github", config)
    artifacts = run_appendix("github", "pagination", config, stamp=True)

    text = open(artifacts.path, encoding="utf-8").read()
    assert text.count("<!-- Generated:") == 1
    assert artifacts.merged_appendices == ["appendix_auth", "appendix_pagination"]


def test_output_override(config, tmp_path):
    target = tmp_path / "custom" / "notes.md"
    artifacts = run_research(
        "github", config, bindings={"docs_url": "https://docs"}, output=target, date=DATE
    )
    assert artifacts.path == str(target)
    assert target.exists()


def test_overlay_template_without_anchor(config, tmp_path):
    templates = tmp_path / "templates"
    templates.mkdir()
    (templates / "spec_main.md").write_text("# Spec {api_name}\n\n## Summary {#summary}\n", encoding="utf-8")
    config.template_dir = templates

    _research(config)
    _spec(config, has_mixed_pagination=True)
    with pytest.raises(AnchorNotFoundError):
        run_appendix("github", "pagination", config)
    assert workflow_status("github", config)["phase"] == "plan"


def test_event_log_records_workflow_events(config):
    config.enable_event_log = True
    _research(config)

    rows = [
        json.loads(line)
        for line in (config.state_dir / "events.jsonl").read_text(encoding="utf-8").splitlines()
    ]
    assert [row["type"] for row in rows] == ["artifact_recorded"]
    assert rows[0]["payload"]["api_name"] == "github"


def test_research_only_during_research_phase(config):
    _research(config)
    _spec(config)
    with pytest.raises(PhaseTransitionError):
        _research(config)


def test_advance_to_expected_phase(config):
    _research(config)
    assert advance_workflow("github", config, "plan") == WorkflowPhase.PLAN
    with pytest.raises(PhaseTransitionError):
        advance_workflow("github", config, "test")
