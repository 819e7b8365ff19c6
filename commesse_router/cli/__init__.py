from __future__ import annotations

import platform
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import typer
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from .. import __version__
from ..core import classifier, executor, naming, planner, scanner, structure
from ..core.errors import (
    ConfigError,
    EnvError,
    ExecutionError,
    InvalidPathError,
    LlmError,
    PathNotDirectoryError,
    PathNotFoundError,
    ValidationError,
)
from ..core.models import FileDescriptor, RoutingSuggestion
from ..core.session import RoutingSession
from ..core.templates import (
    FOLDER_DESCRIPTIONS,
    PROJECT_TEMPLATES,
    available_folders,
    get_template,
    is_valid_folder,
)
from ..utils.env import (
    describe_ai_config,
    get_api_url,
    is_llm_key_present,
    load_folder_config,
    load_stored_ai_config,
    mark_folder_verified,
    save_ai_config,
)
from ..utils.paths import resolve_root
from ..utils.console import (
    configure_logging,
    print_apply_prompt,
    print_batch_summary,
    print_classifying,
    print_config,
    print_error,
    print_file_table,
    print_info,
    print_no_changes_applied,
    print_not_configured,
    print_patterns,
    print_plan_summary,
    print_rename_preview,
    print_review_item,
    print_scan_empty,
    print_scan_start,
    print_structure_result,
    print_success,
    print_suggestion_table,
    print_template_tree,
    print_version,
    print_warning,
)

app = typer.Typer(no_args_is_help=True, help="Commesse router – AI routing and bulk rename for project folders.")
patterns_app = typer.Typer(no_args_is_help=True, help="Inspect or reset learned routing patterns.")
config_app = typer.Typer(no_args_is_help=True, help="Show, change or test the AI configuration.")
app.add_typer(patterns_app, name="patterns")
app.add_typer(config_app, name="config")

DEFAULT_DOWNLOAD_DIR = "downloads"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
) -> None:
    configure_logging(verbose)


# ---------------------------------------------------------------------------
# Shared steps
# ---------------------------------------------------------------------------

def _open_session(project_id: Optional[str] = None) -> RoutingSession:
    try:
        return RoutingSession.create(project_id=project_id)
    except ConfigError as exc:
        print_error(f"Error: Invalid configuration: {exc}")
        raise typer.Exit(code=1)


def _collect_files(
    session: RoutingSession,
    location: str,
    remote: bool,
    include_subfolders: bool,
    max_depth: int,
) -> Tuple[List[FileDescriptor], Optional[Path]]:
    """Scan a local root or a OneDrive folder; exits on validation errors."""
    if remote:
        try:
            drive = session.get_drive()
        except EnvError as exc:
            print_not_configured("OneDrive", str(exc))
            raise typer.Exit(code=1)
        print_scan_start(location)
        try:
            files = scanner.scan_drive(drive, location, include_subfolders, max_depth)
        except InvalidPathError as exc:
            print_error(f"Error: {exc}")
            raise typer.Exit(code=1)
        return files, None

    try:
        root = resolve_root(location)
    except PathNotFoundError:
        print_error(f"Error: Path not found: {location}")
        raise typer.Exit(code=1)
    except PathNotDirectoryError:
        print_error(f"Error: Provided path is not a directory: {location}")
        raise typer.Exit(code=1)

    print_scan_start(root)
    files = scanner.scan_local(root, include_subfolders)
    try:
        mark_folder_verified(session.storage, root)
    except ConfigError as exc:
        print_warning(f"Root folder not remembered: {exc}")
    return files, root


def _confirm(question: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    print_apply_prompt(question)
    return input().strip().lower() in ("y", "yes")


def _review(
    suggestions: List[RoutingSuggestion], template: str, session: RoutingSession
) -> Dict[str, str]:
    """
    Walk through every suggestion and let the user accept or override it.

    Overrides are recorded in the learning store (when learning is enabled)
    and returned as file id -> chosen folder.
    """
    chosen: Dict[str, str] = {}
    total = len(suggestions)
    for index, suggestion in enumerate(suggestions, start=1):
        print_review_item(index, total, suggestion)
        answer = input().strip()
        if not answer:
            continue

        if answer.isdigit() and 1 <= int(answer) <= len(suggestion.alternatives):
            folder = suggestion.alternatives[int(answer) - 1]
        elif is_valid_folder(template, answer):
            folder = answer.strip().rstrip("/") + "/"
        else:
            print_warning(f"'{answer}' is not a {template} folder; keeping {suggestion.suggested_path}")
            continue

        if folder == suggestion.suggested_path:
            continue
        chosen[suggestion.file.id] = folder
        if session.ai_config.learning:
            try:
                session.learning.record(suggestion.file.name, folder)
            except ConfigError as exc:
                print_warning(f"Correction not learned: {exc}")
    return chosen


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def version() -> None:
    """Display version information."""
    session = _open_session()
    try:
        session.get_drive()
        drive_token_set = True
    except EnvError:
        drive_token_set = False
    print_version(
        __version__,
        platform.python_version(),
        api_key_set=is_llm_key_present(session.ai_config),
        drive_token_set=drive_token_set,
    )


@app.command()
def scan(
    location: str = typer.Argument(..., metavar="PATH", help="Local folder, or OneDrive folder with --remote."),
    remote: bool = typer.Option(False, "--remote", help="PATH is a OneDrive folder path."),
    subfolders: bool = typer.Option(True, "--subfolders/--no-subfolders", help="Include subfolders."),
    max_depth: int = typer.Option(
        scanner.DEFAULT_DRIVE_DEPTH, "--max-depth", help="OneDrive recursion depth (capped at 10)."
    ),
) -> None:
    """
    Read-only listing of every file under PATH.
    """
    session = _open_session()
    files, _ = _collect_files(session, location, remote, subfolders, max_depth)
    if not files:
        print_scan_empty(location)
        raise typer.Exit(code=0)
    print_file_table(files)
    print_success("Scan complete. This was a read-only run. No files were changed.")


@app.command()
def route(
    location: str = typer.Argument(..., metavar="PATH", help="Local folder, or OneDrive folder with --remote."),
    template: str = typer.Option(..., "--template", "-t", help="Project template: LUNGO or BREVE."),
    remote: bool = typer.Option(False, "--remote", help="PATH is a OneDrive folder path."),
    project_id: Optional[str] = typer.Option(None, "--project-id", help="Project id for audit records."),
    subfolders: bool = typer.Option(True, "--subfolders/--no-subfolders", help="Include subfolders."),
    max_depth: int = typer.Option(scanner.DEFAULT_DRIVE_DEPTH, "--max-depth", help="OneDrive recursion depth."),
    download_dir: Path = typer.Option(
        Path(DEFAULT_DOWNLOAD_DIR), "--download-dir", help="Where copies go when a file cannot be moved."
    ),
    review: bool = typer.Option(False, "--review", help="Accept or override each suggestion."),
    accept_all: bool = typer.Option(False, "--accept-all", help="Move every file to its suggestion, concurrently."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the suggestions only."),
) -> None:
    """
    Suggest a template folder for every file under PATH and move the files.

    Pipeline:
      - scan PATH
      - classify (learned patterns, rules, AI)
      - build a plan + print summary
      - optional review (overrides are learned)
      - confirm, move files, write CSV move log
    """
    try:
        template_key = get_template(template).key
    except ConfigError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(code=1)

    session = _open_session(project_id)
    files, root = _collect_files(session, location, remote, subfolders, max_depth)
    if not files:
        print_scan_empty(location)
        raise typer.Exit(code=0)

    if session.ai_config.auto_routing and not is_llm_key_present(session.ai_config):
        print_warning("No LLM API key configured; files without a learned pattern or rule go to the fallback folder.")

    print_classifying(len(files), template_key)
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            transient=True,
        ) as progress:
            task = progress.add_task(description="Analysing files...", total=len(files))
            suggestions = classifier.classify_files(
                files,
                template_key,
                session,
                root=root,
                on_progress=lambda done, total, _: progress.update(task, completed=done),
            )
    except ValidationError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(code=1)

    plan = planner.build_plan(suggestions, root=str(root or location), template=template_key)
    print_plan_summary(plan)
    print_suggestion_table(plan.suggestions)

    if dry_run:
        print_success("Dry run. No files were moved.")
        raise typer.Exit(code=0)

    chosen = _review(suggestions, template_key, session) if review else {}

    if not _confirm("Move the files as shown?", yes or accept_all):
        print_no_changes_applied()
        raise typer.Exit(code=0)

    target = {"root": root} if root is not None else {"drive": session.get_drive(), "drive_root": location}
    if accept_all and not chosen:
        result = executor.accept_all(suggestions, download_dir=download_dir, session=session, **target)
    else:
        result = executor.apply_routing(
            suggestions, download_dir=download_dir, chosen_paths=chosen, session=session, **target
        )
    print_batch_summary(result, verb="Moved")


@app.command()
def rename(
    location: str = typer.Argument(..., metavar="PATH", help="Local folder, or OneDrive folder with --remote."),
    code: str = typer.Option(..., "--code", "-c", help="Project code to prefix, e.g. 25ABC123."),
    remote: bool = typer.Option(False, "--remote", help="PATH is a OneDrive folder path."),
    subfolders: bool = typer.Option(True, "--subfolders/--no-subfolders", help="Include subfolders."),
    max_depth: int = typer.Option(scanner.DEFAULT_DRIVE_DEPTH, "--max-depth", help="OneDrive recursion depth."),
    download_dir: Path = typer.Option(
        Path(DEFAULT_DOWNLOAD_DIR), "--download-dir", help="Where copies go when a file cannot be renamed."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """
    Prefix every file name under PATH with the project code.
    """
    code = code.strip()
    if not code:
        print_error("Error: A project code is required.")
        raise typer.Exit(code=1)

    session = _open_session()
    files, root = _collect_files(session, location, remote, subfolders, max_depth)
    if not files:
        print_scan_empty(location)
        raise typer.Exit(code=0)

    previews = naming.build_rename_plan(files, code)
    print_rename_preview(previews, code)
    if all(p.already_correct for p in previews):
        print_success("All files already carry the project code.")
        raise typer.Exit(code=0)

    if not _confirm("Rename the files as shown?", yes):
        print_no_changes_applied()
        raise typer.Exit(code=0)

    if root is not None:
        result = executor.apply_renames(previews, download_dir=download_dir, root=root)
    else:
        result = executor.apply_renames(previews, download_dir=download_dir, drive=session.get_drive())
    print_batch_summary(result, verb="Renamed")


@app.command()
def learn(
    file_name: str = typer.Argument(..., help="A file name like the ones to route."),
    folder: str = typer.Argument(..., help="Destination folder, e.g. 3_PROGETTO/ARC/"),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Check FOLDER against this template."),
) -> None:
    """Teach the router where files named like FILE_NAME belong."""
    if template is not None:
        try:
            valid = is_valid_folder(template, folder)
        except ConfigError as exc:
            print_error(f"Error: {exc}")
            raise typer.Exit(code=1)
        if not valid:
            print_error(f"Error: '{folder}' is not a folder of template {template.upper()}.")
            raise typer.Exit(code=1)

    session = _open_session()
    try:
        correction = session.learning.record(file_name, folder.strip().rstrip("/") + "/")
    except ConfigError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(code=1)
    print_success(f"Learned {correction.signature} -> {correction.path}")


@patterns_app.command("list")
def patterns_list() -> None:
    """List learned patterns, most recent first."""
    session = _open_session()
    print_patterns(session.learning.patterns())


@patterns_app.command("clear")
def patterns_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Forget every learned pattern."""
    session = _open_session()
    count = session.learning.stats()["learned_patterns"]
    if not _confirm(f"Forget {count} learned patterns?", yes):
        print_info("No patterns removed.")
        raise typer.Exit(code=0)
    try:
        session.learning.clear()
    except ConfigError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(code=1)
    print_success(f"Removed {count} learned patterns.")


@app.command()
def templates(
    key: Optional[str] = typer.Argument(None, help="LUNGO or BREVE; all templates when omitted."),
) -> None:
    """Show the project folder templates."""
    try:
        keys = [get_template(key).key] if key else list(PROJECT_TEMPLATES)
    except ConfigError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(code=1)
    for template_key in keys:
        template = PROJECT_TEMPLATES[template_key]
        print_template_tree(template.key, template.name, available_folders(template.key), FOLDER_DESCRIPTIONS)


@app.command()
def create(
    location: str = typer.Argument(..., metavar="ROOT", help="Folder holding the commesse, or OneDrive path with --remote."),
    code: str = typer.Option(..., "--code", "-c", help="Project code, e.g. 25ABC123."),
    name: str = typer.Option(..., "--name", "-n", help="Project name (subject of the commessa)."),
    template: str = typer.Option(..., "--template", "-t", help="Project template: LUNGO or BREVE."),
    remote: bool = typer.Option(False, "--remote", help="ROOT is a OneDrive folder path."),
) -> None:
    """
    Create `<code>_<name>` under ROOT with the template's folder tree.

    Folders that already exist are left alone; an existing folder for the
    same project code is completed rather than duplicated.
    """
    session = _open_session()
    try:
        if remote:
            try:
                drive = session.get_drive()
            except EnvError as exc:
                print_not_configured("OneDrive", str(exc))
                raise typer.Exit(code=1)
            result = structure.create_drive_structure(drive, location, code, name, template)
        else:
            result = structure.create_project_structure(resolve_root(location), code, name, template)
    except (PathNotFoundError, PathNotDirectoryError, InvalidPathError, ConfigError, ValidationError,
            ExecutionError) as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(code=1)
    print_structure_result(result)
    print_success("Project folder ready.")


@config_app.command("show")
def config_show() -> None:
    """Show the effective AI configuration (environment overrides applied)."""
    session = _open_session()
    folder = load_folder_config(session.storage)
    print_config(
        describe_ai_config(session.ai_config),
        extra={
            "storage": session.storage.path,
            "audit_url": get_api_url(),
            "last_root": folder.root_path,
            "root_verified_at": folder.verified_at,
            "learned_patterns": session.learning.stats()["learned_patterns"],
        },
    )


@config_app.command("set")
def config_set(
    api_key: Optional[str] = typer.Option(None, "--api-key", help="LLM API key."),
    model: Optional[str] = typer.Option(None, "--model", help="LLM model name."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="OpenAI-compatible endpoint."),
    auto_routing: Optional[bool] = typer.Option(None, "--auto-routing/--no-auto-routing", help="Use the LLM."),
    learning: Optional[bool] = typer.Option(None, "--learning/--no-learning", help="Use learned patterns."),
) -> None:
    """Update the stored AI configuration."""
    session = _open_session()
    try:
        config = load_stored_ai_config(session.storage)
    except ConfigError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(code=1)

    if api_key is not None:
        config.api_key = api_key or None
    if model:
        config.model = model
    if base_url is not None:
        config.base_url = base_url or None
    if auto_routing is not None:
        config.auto_routing = auto_routing
    if learning is not None:
        config.learning = learning

    try:
        save_ai_config(session.storage, config)
    except ConfigError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(code=1)
    print_success("AI configuration saved.")
    print_config(describe_ai_config(config))


@config_app.command("test")
def config_test() -> None:
    """Make one LLM call with the current configuration."""
    session = _open_session()
    try:
        reply = classifier.check_llm_connection(session)
    except EnvError as exc:
        print_not_configured("The LLM", str(exc))
        raise typer.Exit(code=1)
    except LlmError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(code=1)
    print_success(f"LLM reachable ({session.ai_config.model}): {reply}")
