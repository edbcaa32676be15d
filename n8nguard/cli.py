#!/usr/bin/env python3
# n8nguard/cli.py

import json
from pathlib import Path
from typing import Any, List, Optional

import typer

from n8nguard.catalog.memory import load_catalog
from n8nguard.catalog.similarity import NodeSimilarityService, format_suggestion_message
from n8nguard.config import Settings
from n8nguard.diff.engine import WorkflowDiffEngine
from n8nguard.errors import CatalogError
from n8nguard.handlers import handle_update_partial_workflow
from n8nguard.store import FileWorkflowStore
from n8nguard.utils.io import dump_any, load_any, write_json
from n8nguard.utils.logger import init_logger, parse_level
from n8nguard.validation.report import ValidationOptions
from n8nguard.validation.validator import WorkflowValidator

app = typer.Typer(help="n8nguard CLI - validate n8n workflows and apply diff operations")

settings = Settings.from_env()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG | INFO | WARNING | ERROR (default: LOG_LEVEL env)"),
):
    level = parse_level(log_level, default=settings.log_level) if log_level else settings.log_level
    init_logger(level=level, log_dir=settings.log_dir)


def _catalog(path: Optional[Path]):
    try:
        return load_catalog(path or settings.catalog_path)
    except CatalogError as e:
        raise typer.BadParameter(str(e))


def _load_operations(path: Path) -> List[Any]:
    data = load_any(path)
    if isinstance(data, dict):
        data = data.get("operations")
    if not isinstance(data, list):
        raise typer.BadParameter(f"{path}: expected a list of operations or {{'operations': [...]}}")
    return data


def _print_issues(title: str, issues: List[dict]) -> None:
    if not issues:
        return
    print(f"{title}:")
    for it in issues:
        where = f"[{it['nodeName']}] " if it.get("nodeName") else ""
        print(f"- {where}{it['message']}")


@app.command()
def validate(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Path to n8n workflow JSON/YAML"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Node catalog file (default: bundled catalog)"),
    nodes: bool = typer.Option(True, "--nodes/--no-nodes", help="Check node types and node settings"),
    connections: bool = typer.Option(True, "--connections/--no-connections", help="Check connections, cycles and error outputs"),
    expressions: bool = typer.Option(True, "--expressions/--no-expressions", help="Check {{ }} expressions"),
    report: Optional[Path] = typer.Option(None, "--report", help="Write the JSON report to this path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show statistics and suggestions"),
):
    """
    Validate one workflow. Exits with code 1 when the workflow has errors.
    """
    wf = load_any(input)
    options = ValidationOptions(validate_nodes=nodes, validate_connections=connections, validate_expressions=expressions)
    result = WorkflowValidator(_catalog(catalog)).validate(wf, options).to_dict()

    print(f"Valid:    {'yes' if result['valid'] else 'no'}")
    print(f"Errors:   {len(result['errors'])}")
    print(f"Warnings: {len(result['warnings'])}")
    _print_issues("Errors", result["errors"])
    _print_issues("Warnings", result["warnings"])

    if verbose:
        print("[debug] statistics:", result["statistics"])
        for s in result["suggestions"]:
            print(f"[hint] {s}")

    if report is not None:
        write_json(report, {"input": str(input), **result})
        print(f"[ok] wrote report to {report}")

    if not result["valid"]:
        raise typer.Exit(code=1)


@app.command()
def diff(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Path to n8n workflow JSON/YAML"),
    ops: Path = typer.Option(..., "--ops", exists=True, readable=True, help="Operations file (list or {'operations': [...]})"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write the updated workflow here"),
    validate_only: bool = typer.Option(False, "--validate-only", help="Check the operations without producing a workflow"),
    validate_result: bool = typer.Option(False, "--validate-result", help="Reject the batch if the result does not validate"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Node catalog for --validate-result"),
):
    """
    Apply up to 5 diff operations to a workflow file.
    """
    wf = load_any(input)
    post_validate = WorkflowValidator(_catalog(catalog)).validate if validate_result else None
    result = WorkflowDiffEngine().apply(wf, _load_operations(ops), validate_only=validate_only, post_validate=post_validate)

    print(result.message)
    for r in result.operations:
        mark = "ok" if r.changed else "no-op"
        print(f"[{mark}] #{r.index} {r.type}: {r.message}")
    for e in result.errors:
        print(f"[error] operation {e['operation']}: {e['message']}")

    if not result.success:
        raise typer.Exit(code=1)

    if out is not None and result.workflow is not None:
        try:
            dump_any(out, result.workflow)
        except ValueError as e:
            raise typer.BadParameter(str(e))
        print(f"[ok] wrote workflow to {out}")
    elif result.workflow is not None:
        print(json.dumps(result.workflow, ensure_ascii=False, indent=2))


@app.command()
def update(
    workflow_id: str = typer.Option(..., "--id", help="Workflow id in the store"),
    ops: Path = typer.Option(..., "--ops", exists=True, readable=True, help="Operations file"),
    store_dir: Optional[Path] = typer.Option(None, "--store-dir", help="Workflow store directory (default: N8NGUARD_STORE_DIR)"),
    validate_only: bool = typer.Option(False, "--validate-only", help="Check the operations without saving"),
    validate_result: bool = typer.Option(False, "--validate-result", help="Reject the batch if the result does not validate"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Node catalog for --validate-result"),
):
    """
    Load a stored workflow, apply operations and save it back.
    """
    store = FileWorkflowStore(store_dir or settings.store_dir)
    args = {
        "id": workflow_id,
        "operations": _load_operations(ops),
        "validateOnly": validate_only,
        "validateResult": validate_result,
    }
    response = handle_update_partial_workflow(args, store, _catalog(catalog) if validate_result else None)
    print(json.dumps(response, ensure_ascii=False, indent=2))
    if not response["success"]:
        raise typer.Exit(code=1)


@app.command()
def suggest(
    node_type: str = typer.Argument(..., help="Unknown node type, e.g. 'httpreqest'"),
    limit: int = typer.Option(5, "--limit", help="Maximum number of suggestions"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Node catalog file"),
):
    """
    Suggest catalog node types similar to an unknown one.
    """
    service = NodeSimilarityService(_catalog(catalog))
    suggestions = service.find_similar_nodes(node_type, limit=limit)
    print(format_suggestion_message(suggestions, node_type), end="")


@app.command()
def bench(
    glob: str = typer.Option("bench/validation/*/workflow.json", "--glob", help="Glob for workflow JSON files"),
    out: Path = typer.Option(Path("experiments/results/validation.csv"), "--out", help="CSV path to write results"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Node catalog file"),
):
    """
    Validate a set of workflows and export a CSV summary.
    """
    import glob as _glob
    import pandas as pd

    validator = WorkflowValidator(_catalog(catalog))
    rows = []
    for fp_str in sorted(_glob.glob(glob)):
        fp = Path(fp_str)
        wf = load_any(fp)
        if not isinstance(wf, dict) or "nodes" not in wf:
            print(f"[skip] {fp} does not look like a workflow JSON (missing 'nodes'); skipping")
            continue
        result = validator.validate(wf)
        rows.append({
            "id": fp.parent.name,
            "valid": result.valid,
            "errors": len(result.errors),
            "warnings": len(result.warnings),
            **result.statistics,
        })

    out.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows).to_csv(out, index=False)
    print(f"[ok] wrote {out} ({len(rows)} workflows)")


if __name__ == "__main__":
    app()
