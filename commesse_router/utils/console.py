from __future__ import annotations

"""
Console utilities for the `commesse-router` CLI.

This module centralizes **all** user-facing terminal output and uses Rich
for styling, tables and log rendering. Typer command handlers should call
these helpers instead of printing directly.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.tree import Tree

from ..core.models import (
    BatchResult,
    Correction,
    FileDescriptor,
    RenameOutcome,
    RenamePreview,
    RoutingPlan,
    RoutingSuggestion,
)
from ..core.structure import StructureResult

# Single shared console instance
console = Console()

LEVEL_STYLES = {"high": "green", "medium": "yellow", "low": "red"}
MAX_TABLE_ROWS = 50

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def configure_logging(verbose: bool = False) -> None:
    """Route the package loggers through Rich on the shared console."""
    handler = RichHandler(console=console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger = logging.getLogger("commesse_router")
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.propagate = False


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _path_str(path: Path | str) -> str:
    return str(path)


def _format_confidence(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{round(value * 100)}%"


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


def _more_rows_note(total: int) -> None:
    if total > MAX_TABLE_ROWS:
        console.print(f"... and {total - MAX_TABLE_ROWS} more")

# ---------------------------------------------------------------------------
# Generic helpers (errors, warnings, success)
# ---------------------------------------------------------------------------

def print_error(message: str) -> None:
    """Print a generic error message in bold red."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]{message}[/green]")


def print_info(message: str) -> None:
    console.print(message)


def print_apply_prompt(question: str) -> None:
    """
    Print a '(y/n)' confirmation prompt.

    This function only prints; command code is responsible for reading input.
    """
    console.print(f"{question} (y/n): ", end="")


def print_no_changes_applied() -> None:
    console.print("No changes applied.")
    console.print("No files were moved or renamed.")

# ---------------------------------------------------------------------------
# Command: scan
# ---------------------------------------------------------------------------

def print_scan_start(location: Path | str) -> None:
    console.print(f"[bold]Scanning files under '{_path_str(location)}'...[/bold]")


def print_scan_empty(location: Path | str) -> None:
    console.print(f"No files found under '{_path_str(location)}'.")


def print_file_table(files: Sequence[FileDescriptor]) -> None:
    """Table of scanned files: path, size, last modified."""
    table = Table("File", "Folder", "Size", "Modified")
    for f in files[:MAX_TABLE_ROWS]:
        modified = f.last_modified.strftime("%Y-%m-%d %H:%M") if f.last_modified else "-"
        table.add_row(f.name, f.parent_path or ".", _format_size(f.size), modified)
    console.print(table)
    _more_rows_note(len(files))
    total_mb = sum(f.size for f in files) / (1024 * 1024)
    console.print(f"Total files: {len(files)} | Total size: {total_mb:.2f} MB")

# ---------------------------------------------------------------------------
# Command: route
# ---------------------------------------------------------------------------

def print_classifying(count: int, template: str) -> None:
    console.print(f"Analysing {count} files for template {template} (learned, rules, AI)...")


def print_plan_summary(plan: RoutingPlan) -> None:
    """Per-folder aggregates and confidence levels of a routing plan."""
    console.print(f"[bold]Proposed routing for: {plan.root}[/bold] (template {plan.template})")
    console.print(
        f"Total files: {plan.total_files} | "
        f"Total size: {plan.total_size_mb:.2f} MB | "
        f"High: {plan.level_counts.get('high', 0)} | "
        f"Medium: {plan.level_counts.get('medium', 0)} | "
        f"Low: {plan.level_counts.get('low', 0)} | "
        f"Fallback: {plan.num_fallback}"
    )

    table = Table("Folder", "Files", "Size (MB)", "Avg confidence", "Sample files")
    for summary in plan.folders:
        table.add_row(
            summary.folder,
            str(summary.file_count),
            f"{summary.total_size_mb:.2f}",
            _format_confidence(summary.avg_confidence),
            ", ".join(summary.sample_files),
        )
    console.print(table)

    if plan.num_fallback:
        console.print(
            "Note: files routed by the fallback could not be analysed; review them before moving."
        )


def print_suggestion_table(suggestions: Sequence[RoutingSuggestion]) -> None:
    table = Table("#", "File", "Suggested folder", "Confidence", "Method", "Reasoning")
    for index, s in enumerate(suggestions[:MAX_TABLE_ROWS], start=1):
        style = LEVEL_STYLES[s.level]
        table.add_row(
            str(index),
            s.file.relative_path,
            s.suggested_path,
            f"[{style}]{_format_confidence(s.confidence)}[/{style}]",
            s.method,
            s.reasoning,
        )
    console.print(table)
    _more_rows_note(len(suggestions))


def print_review_item(index: int, total: int, suggestion: RoutingSuggestion) -> None:
    """One suggestion during interactive review, with its alternatives."""
    style = LEVEL_STYLES[suggestion.level]
    console.print()
    console.print(f"[bold]({index}/{total}) {suggestion.file.relative_path}[/bold]")
    console.print(
        f"  -> {suggestion.suggested_path} "
        f"[{style}]{_format_confidence(suggestion.confidence)}[/{style}] ({suggestion.method})"
    )
    console.print(f"  {suggestion.reasoning}")
    for n, alt in enumerate(suggestion.alternatives, start=1):
        console.print(f"  [{n}] {alt}")
    console.print("  Enter to accept, a number for an alternative, or a folder path: ", end="")

# ---------------------------------------------------------------------------
# Command: rename
# ---------------------------------------------------------------------------

def print_rename_preview(previews: Sequence[RenamePreview], project_code: str) -> None:
    to_rename = [p for p in previews if not p.already_correct]
    console.print(f"[bold]Rename preview for project code {project_code}[/bold]")
    table = Table("Current name", "New name", "Folder")
    for p in to_rename[:MAX_TABLE_ROWS]:
        table.add_row(p.original, f"[green]{p.renamed}[/green]", p.file.parent_path or ".")
    console.print(table)
    _more_rows_note(len(to_rename))
    console.print(
        f"{len(to_rename)} files to rename, {len(previews) - len(to_rename)} already correct."
    )

# ---------------------------------------------------------------------------
# Batch results (rename and route)
# ---------------------------------------------------------------------------

def print_batch_summary(result: BatchResult, verb: str = "Renamed") -> None:
    """
    End-of-run summary of a batch:

    - one warning per fallback or failed file
    - counts per outcome
    - move log path
    """
    for op in result.operations:
        if op.outcome == RenameOutcome.DOWNLOADED_FALLBACK:
            print_warning(f"'{op.original}' could not be changed in place; copy saved to '{op.renamed}' ({op.error})")
        elif op.outcome == RenameOutcome.FAILED:
            print_warning(f"failed to process '{op.original}': {op.error}")

    console.print(f"{verb} in place: {result.count(RenameOutcome.SUCCEEDED_IN_PLACE)}")
    console.print(f"Downloaded instead: {result.count(RenameOutcome.DOWNLOADED_FALLBACK)}")
    console.print(f"Already correct: {result.count(RenameOutcome.ALREADY_CORRECT)}")
    failed = result.count(RenameOutcome.FAILED)
    if failed:
        print_error(f"Failed: {failed} (see warnings above)")

    if result.log_path is not None:
        console.print(f"Move log written to '{_path_str(result.log_path)}'.")

# ---------------------------------------------------------------------------
# Command: create
# ---------------------------------------------------------------------------

def print_structure_result(result: StructureResult) -> None:
    console.print(f"[bold]Project folder: {result.project_path}[/bold] (template {result.template})")
    for folder in result.created[:MAX_TABLE_ROWS]:
        console.print(f"  [green]+[/green] {folder}")
    _more_rows_note(len(result.created))
    console.print(f"{len(result.created)} folders created, {len(result.existing)} already present.")

# ---------------------------------------------------------------------------
# Commands: patterns, templates
# ---------------------------------------------------------------------------

def print_patterns(corrections: Sequence[Correction]) -> None:
    if not corrections:
        console.print("No learned patterns yet.")
        return
    table = Table("Signature", "Folder", "Recorded at")
    for c in corrections:
        table.add_row(c.signature, c.path, c.recorded_at or "-")
    console.print(table)
    console.print(f"{len(corrections)} learned patterns.")


def print_template_tree(key: str, name: str, folders: Iterable[str], descriptions: Dict[str, str]) -> None:
    tree = Tree(f"[bold]{name}[/bold] ({key})")
    nodes: Dict[str, Tree] = {}
    for folder in folders:
        parent, _, leaf = folder.rpartition("/")
        label = f"{leaf}/"
        if folder in descriptions:
            label += f" [dim]{descriptions[folder]}[/dim]"
        nodes[folder] = nodes.get(parent, tree).add(label)
    console.print(tree)

# ---------------------------------------------------------------------------
# Commands: config, version
# ---------------------------------------------------------------------------

def print_config(values: Dict[str, Any], extra: Optional[Dict[str, Any]] = None) -> None:
    table = Table("Setting", "Value")
    for key, value in {**values, **(extra or {})}.items():
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


def print_version(version: str, python_version: str, api_key_set: bool, drive_token_set: bool) -> None:
    console.print(f"[bold]commesse-router {version}[/bold]")
    console.print(f"Python {python_version}")
    console.print(f"LLM API key: {'set' if api_key_set else 'not set'}")
    console.print(f"OneDrive: {'connected' if drive_token_set else 'not connected'}")


def print_not_configured(what: str, hint: str) -> None:
    print_error(f"Error: {what} is not configured.")
    console.print(hint)
