import argparse
import json
import logging
import sys
from pathlib import Path
from textwrap import dedent

from .config import AppConfig
from .errors import DltSpecError, MissingBindingError
from .events import WorkflowEventLog, format_event
from .pipeline import (
    APPENDIX_PHASES_BY_NAME,
    add_workflow_task,
    advance_workflow,
    complete_workflow_task,
    normalize_api_name,
    run_appendix,
    run_research,
    run_spec,
    workflow_status,
)
from .store import build_store, list_placeholders
from .workflow_models import ComplexityFlags, WorkflowPhase

logger = logging.getLogger(__name__)

_PHASE_CHOICES = [phase.value for phase in WorkflowPhase]
IO_ERROR_EXIT_CODE = 10


def _parse_assignment(raw: str) -> tuple[str, str]:
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected key=value, got {raw!r}")
    return key.strip(), value


def _api_name(raw: str) -> str:
    try:
        return normalize_api_name(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def _add_document_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        type=Path,
        help="Write the document here instead of the conventional research/ or specs/ path.",
    )
    parser.add_argument(
        "--destination",
        help="dlt destination named in the document (default: DLTSPEC_DESTINATION or duckdb).",
    )
    parser.add_argument(
        "--date",
        help="Date used in file names and headers as YYYY-MM-DD (default: today).",
    )
    _add_binding_options(parser)
    parser.add_argument(
        "--stamp",
        action="store_true",
        help="Append a UTC timestamp comment to the written document.",
    )


def _add_binding_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--set",
        dest="assignments",
        type=_parse_assignment,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Bind a template placeholder (repeatable).",
    )
    parser.add_argument(
        "--bindings",
        type=Path,
        help="JSON file with an object of placeholder bindings.",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dltspec",
        description="Generate research notes and dlt REST API specs from markdown templates.",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        help="Directory holding workflow state (overrides DLTSPEC_STATE_DIR).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Root directory for generated documents (overrides DLTSPEC_OUTPUT_DIR).",
    )
    parser.add_argument(
        "--template-dir",
        type=Path,
        help="Directory of templates overlaying the built-ins (overrides DLTSPEC_TEMPLATE_DIR).",
    )
    parser.add_argument(
        "--no-seed",
        action="store_true",
        help="Do not seed default checklist items when a phase starts.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    commands = parser.add_subparsers(dest="command", required=True)

    research = commands.add_parser("research", help="Write the research document for an API.")
    research.add_argument("api_name", type=_api_name, help="API name, e.g. github")
    _add_document_options(research)

    spec = commands.add_parser("spec", help="Write the main dlt REST client spec for an API.")
    spec.add_argument("api_name", type=_api_name, help="API name, e.g. github")
    _add_document_options(spec)
    spec.add_argument("--custom-auth", action="store_true", help="Schedule the authentication appendix.")
    spec.add_argument("--mixed-pagination", action="store_true", help="Schedule the pagination appendix.")
    spec.add_argument("--compound-cursor", action="store_true", help="Schedule the incremental appendix.")
    spec.add_argument("--custom-retry", action="store_true", help="Schedule the retry appendix.")

    appendix = commands.add_parser("appendix", help="Merge an appendix into the main spec.")
    appendix.add_argument("api_name", type=_api_name)
    appendix.add_argument("name", choices=sorted(APPENDIX_PHASES_BY_NAME))
    appendix.add_argument("--date", help="Date bound to {date} (default: today).")
    appendix.add_argument("--destination", help="dlt destination bound to {destination}.")
    _add_binding_options(appendix)
    appendix.add_argument("--stamp", action="store_true", help="Append a UTC timestamp comment.")

    status = commands.add_parser("status", help="Show workflow phase, checklist and artifacts.")
    status.add_argument("api_name", type=_api_name)
    status.add_argument("--json", action="store_true", help="Print the status as JSON.")
    status.add_argument("--events", type=int, default=0, help="Also print the last N logged events.")

    advance = commands.add_parser("advance", help="Move the workflow to its next phase.")
    advance.add_argument("api_name", type=_api_name)
    advance.add_argument("--to", choices=_PHASE_CHOICES, help="Phase expected next (fails otherwise).")

    task_add = commands.add_parser("task-add", help="Append a checklist item.")
    task_add.add_argument("api_name", type=_api_name)
    task_add.add_argument("description")
    task_add.add_argument("--phase", choices=_PHASE_CHOICES, help="Phase (default: current).")

    task_done = commands.add_parser("task-done", help="Mark a checklist item as done.")
    task_done.add_argument("api_name", type=_api_name)
    task_done.add_argument("index", type=int)
    task_done.add_argument("--phase", choices=_PHASE_CHOICES, help="Phase (default: current).")

    commands.add_parser("templates", help="List available templates and their placeholders.")
    return parser


def _collect_bindings(args: argparse.Namespace, parser: argparse.ArgumentParser) -> dict[str, str]:
    bindings: dict[str, str] = {}
    if getattr(args, "bindings", None):
        try:
            loaded = json.loads(args.bindings.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            parser.error(f"cannot read bindings file {args.bindings}: {exc}")
        if not isinstance(loaded, dict):
            parser.error(f"bindings file {args.bindings} must contain a JSON object")
        bindings.update({str(key): str(value) for key, value in loaded.items()})
    bindings.update(dict(getattr(args, "assignments", []) or []))
    return bindings


def _format_status(status: dict) -> str:
    lines = [
        f"API: {status['api_name']}",
        f"Phase: {status['phase']}",
        f"Next phase: {status['next_phase'] or '(complete)'}",
        "Route: " + " -> ".join(status["route"]),
    ]
    if status["artifacts"]:
        lines.append("Artifacts:")
        lines.extend(f"  - {phase}: {path}" for phase, path in status["artifacts"].items())
    if status["checklist"]:
        lines.append("Checklist:")
        for phase, items in status["checklist"].items():
            lines.append(f"  {phase}:")
            lines.extend(
                f"    [{'x' if item['done'] else ' '}] {item['index']}. {item['description']}"
                for item in items
            )
    if status["pending"]:
        lines.append("Pending before advancing:")
        lines.extend(f"  - {item}" for item in status["pending"])
    return "\n".join(lines)


def _format_missing(exc: MissingBindingError) -> str:
    lines = [f"Missing bindings for '{exc.template_id}':"]
    lines.extend(f"  - {item.key}: {item.prompt}" for item in exc.needs_input)
    lines.append("Supply them with --set KEY=VALUE or --bindings FILE.")
    return "\n".join(lines)


def _run(args: argparse.Namespace, parser: argparse.ArgumentParser, config: AppConfig) -> str:
    if args.command == "templates":
        store = build_store(config.template_dir)
        rows = []
        for template_id in store.list_ids():
            template = store.load(template_id)
            target = getattr(template, "target_anchor", None)
            kind = f"appendix -> {target}" if target else template.kind
            keys = ", ".join(sorted(list_placeholders(template))) or "-"
            rows.append(f"{template_id} ({kind}): {keys}")
        return "\n".join(rows)

    if args.command in ("research", "spec", "appendix"):
        if args.destination:
            config.destination = args.destination
        bindings = _collect_bindings(args, parser)

    if args.command == "research":
        artifacts = run_research(
            args.api_name, config, bindings=bindings, output=args.output, date=args.date, stamp=args.stamp
        )
    elif args.command == "spec":
        flags = ComplexityFlags(
            has_custom_auth=args.custom_auth,
            has_mixed_pagination=args.mixed_pagination,
            has_compound_cursor=args.compound_cursor,
            has_custom_retry_logic=args.custom_retry,
        )
        artifacts = run_spec(
            args.api_name,
            config,
            flags=flags,
            bindings=bindings,
            output=args.output,
            date=args.date,
            stamp=args.stamp,
        )
    elif args.command == "appendix":
        artifacts = run_appendix(
            args.api_name, args.name, config, bindings=bindings, date=args.date, stamp=args.stamp
        )
    elif args.command == "status":
        status = workflow_status(args.api_name, config)
        text = json.dumps(status, indent=2) if args.json else _format_status(status)
        if args.events > 0:
            log = WorkflowEventLog(config.state_dir / "events.jsonl")
            events = log.events(args.api_name, limit=args.events)
            text += "\nEvents:\n" + "\n".join(format_event(e) for e in events)
        return text
    elif args.command == "advance":
        phase = advance_workflow(args.api_name, config, args.to)
        return f"Workflow for {args.api_name} is now in phase: {phase.value}"
    elif args.command == "task-add":
        index = add_workflow_task(args.api_name, config, args.description, args.phase)
        return f"Added task #{index}: {args.description}"
    elif args.command == "task-done":
        complete_workflow_task(args.api_name, config, args.index, args.phase)
        return f"Marked task #{args.index} as done"
    else:  # pragma: no cover - argparse rejects unknown commands
        parser.error(f"unknown command {args.command!r}")

    summary = dedent(
        f"""\
        Document written:
          - {artifacts.path}
        Phase: {artifacts.phase}
        """
    ).rstrip()
    if artifacts.merged_appendices:
        summary += "\nMerged appendices: " + ", ".join(artifacts.merged_appendices)
    if artifacts.next_phase:
        summary += f"\nNext phase: {artifacts.next_phase}"
    return summary


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = AppConfig()
    if args.state_dir:
        config.state_dir = args.state_dir
    if args.output_dir:
        config.output_dir = args.output_dir
    if args.template_dir:
        config.template_dir = args.template_dir
    if args.no_seed:
        config.seed_checklists = False

    try:
        output = _run(args, parser, config)
    except MissingBindingError as exc:
        print(_format_missing(exc), file=sys.stderr)
        return exc.exit_code
    except DltSpecError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return IO_ERROR_EXIT_CODE
    except ValueError as exc:
        parser.error(str(exc))
        return 2

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
