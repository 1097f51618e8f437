#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "typer",
#     "rich",
#     "readchar",
#     "httpx",
#     "truststore",
#     "beautifulsoup4",
# ]
# ///
"""
create-p5 - Scaffolding tool for p5.js projects

Usage:
    create-p5 init <project-name>
    create-p5 init <project-name> --template user/repo/path#branch
    create-p5 update [project-dir]
    create-p5 versions

Or install globally:
    uv tool install create-p5
    create-p5 init my-sketch
"""

import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.align import Align
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree
from typer.core import TyperGroup

from .config import CONFIG_FILENAME, LANGUAGES, P5_MODES
from .errors import CreateP5Error
from .http_client import build_client
from .logging_setup import setup_logging
from .scaffold import BUILTIN_TEMPLATES, LIB_DIRNAME, scaffold_project, template_for
from .template_spec import is_remote_template_spec
from .ui import StepTracker, select_with_arrows
from .update import load_project_config, switch_mode, update_version
from .versions import (
    dump_catalog,
    fetch_versions,
    is_stable_version,
    latest_stable,
    resolve_version_request,
)

__version__ = "0.1.0"

# Constants
DELIVERY_MODE_CHOICES = {
    "cdn": "Load p5.js from a CDN",
    "local": "Download p5.js into lib/",
}
LANGUAGE_CHOICES = {
    "javascript": "JavaScript",
    "typescript": "TypeScript (with type definitions)",
}
P5_MODE_CHOICES = {
    "global": "Global mode (setup/draw as globals)",
    "instance": "Instance mode (sketch function)",
}
UPDATE_ACTION_CHOICES = {
    "version": "Change to a different version of p5.js",
    "mode": "Switch between CDN and local file delivery",
    "cancel": "Exit without making changes",
}
VERSION_DISPLAY_LIMIT = 15

GITIGNORE_ENTRIES = [
    "# Dependencies",
    "node_modules/",
    "",
    "# System files",
    ".DS_Store",
    "Thumbs.db",
    "",
    "# Logs",
    "*.log",
    "npm-debug.log*",
    "",
    "# Environment",
    ".env",
    ".env.local",
]

BANNER = """
 ██████╗██████╗ ███████╗ █████╗ ████████╗███████╗    ██████╗ ███████╗
██╔════╝██╔══██╗██╔════╝██╔══██╗╚══██╔══╝██╔════╝    ██╔══██╗██╔════╝
██║     ██████╔╝█████╗  ███████║   ██║   █████╗█████╗██████╔╝███████╗
██║     ██╔══██╗██╔══╝  ██╔══██║   ██║   ██╔══╝╚════╝██╔═══╝ ╚════██║
╚██████╗██║  ██║███████╗██║  ██║   ██║   ███████╗    ██║     ███████║
 ╚═════╝╚═╝  ╚═╝╚══════╝╚═╝  ╚═╝   ╚═╝   ╚══════╝    ╚═╝     ╚══════╝
"""

TAGLINE = "Scaffold p5.js sketches from templates"


console = Console()


class BannerGroup(TyperGroup):
    """Custom group that shows banner before help."""

    def format_help(self, ctx, formatter):
        show_banner()
        super().format_help(ctx, formatter)


app = typer.Typer(
    name="create-p5",
    help="Scaffolding tool for p5.js projects",
    add_completion=False,
    invoke_without_command=True,
    cls=BannerGroup,
)


def show_banner():
    """Display the ASCII art banner."""
    banner_lines = BANNER.strip().split('\n')
    colors = ["bright_magenta", "magenta", "bright_red", "red", "bright_magenta", "magenta"]

    styled_banner = Text()
    for i, line in enumerate(banner_lines):
        styled_banner.append(line + "\n", style=colors[i % len(colors)])

    console.print(Align.center(styled_banner))
    console.print(Align.center(Text(TAGLINE, style="italic bright_yellow")))
    console.print()


@app.callback()
def callback(ctx: typer.Context):
    """Show banner when no subcommand is provided."""
    if ctx.invoked_subcommand is None and "--help" not in sys.argv and "-h" not in sys.argv:
        show_banner()
        console.print(Align.center("[dim]Run 'create-p5 --help' for usage information[/dim]"))
        console.print()


def _interactive() -> bool:
    return sys.stdin.isatty()


def _fail(message: str, title: str = "Error") -> None:
    console.print(Panel(message, title=f"[red]{title}[/red]", border_style="red", padding=(1, 2)))
    raise typer.Exit(1)


def _choose(value: Optional[str], choices: dict, prompt_text: str, default_key: str, option_name: str) -> str:
    """Validate an explicit option, or ask (TTY) / fall back to the default."""
    if value:
        if value not in choices:
            _fail(f"Invalid {option_name} '{value}'. Choose from: {', '.join(choices)}")
        return value
    if _interactive():
        return select_with_arrows(console, choices, prompt_text, default_key)
    return default_key


def _resolve_version(requested: Optional[str], include_prerelease: bool, client) -> str:
    """Turn 'latest', a partial or exact version, or nothing (prompt) into a version."""
    if requested:
        return resolve_version_request(requested, client=client)
    if not _interactive():
        return latest_stable(client=client)

    catalog = fetch_versions(include_prerelease, client=client)
    shown = catalog.versions[:VERSION_DISPLAY_LIMIT]
    if not shown:
        return latest_stable(client=client)
    options = {v: ("latest" if v == catalog.latest else "") for v in shown}
    default = catalog.latest if catalog.latest in options else shown[0]
    return select_with_arrows(console, options, "Select p5.js version:", default)


def check_tool_for_tracker(tool: str, tracker: StepTracker) -> bool:
    """Check if a tool is installed and update tracker."""
    if shutil.which(tool):
        tracker.complete(tool, "available")
        return True
    tracker.error(tool, "not found")
    return False


def check_tool(tool: str) -> bool:
    """Check if a tool is installed."""
    return shutil.which(tool) is not None


def is_git_repo(path: Path = None) -> bool:
    """Check if the specified path is inside a git repository."""
    if path is None:
        path = Path.cwd()

    if not path.is_dir():
        return False

    try:
        subprocess.run(
            ["git", "rev-parse", "--is-inside-work-tree"],
            check=True,
            capture_output=True,
            cwd=path,
        )
        return True
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False


def write_gitignore(project_path: Path, include_lib: bool = False) -> bool:
    """Merge the standard ignore entries into the project's .gitignore.

    An empty or missing file gets the full commented block; otherwise only
    entries not already present are appended. ``include_lib`` also ignores the
    downloaded lib/ directory (local delivery mode). Returns True if the file
    was written.
    """
    gitignore = project_path / ".gitignore"
    content = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
    present = {line.strip() for line in content.splitlines()}

    if content.strip():
        additions = [e for e in GITIGNORE_ENTRIES if e and not e.startswith("#") and e not in present]
    else:
        additions = list(GITIGNORE_ENTRIES)
    if include_lib and f"{LIB_DIRNAME}/" not in present:
        additions += ["", "# Local p5.js files", f"{LIB_DIRNAME}/"]

    if not any(e and not e.startswith("#") for e in additions):
        return False
    if content and not content.endswith("\n"):
        content += "\n"
    block = "\n".join(additions)
    gitignore.write_text(content + (block if content else block.lstrip("\n")) + "\n", encoding="utf-8")
    return True


def init_git_repo(project_path: Path, quiet: bool = False, include_lib: bool = False) -> bool:
    """Initialize a git repository and .gitignore in the specified path.
    quiet: if True suppress console output (tracker handles status)
    """
    try:
        if not quiet:
            console.print("[cyan]Initializing git repository...[/cyan]")
        subprocess.run(["git", "init"], check=True, capture_output=True, cwd=project_path)
        write_gitignore(project_path, include_lib=include_lib)
        if not quiet:
            console.print("[green]✓[/green] Git repository initialized")
        return True
    except subprocess.CalledProcessError as e:
        if not quiet:
            console.print(f"[red]Error initializing git repository:[/red] {e}")
        return False


@app.command()
def init(
    project_name: str = typer.Argument("my-sketch", help="Name for your new project directory"),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Built-in template name or GitHub spec (user/repo, user/repo/path#branch, or URL)"),
    version: Optional[str] = typer.Option(None, "--version", "-v", help="p5.js version (e.g. 1.9.0 or 'latest')"),
    mode: Optional[str] = typer.Option(None, "--mode", help="Delivery mode: cdn or local"),
    language: Optional[str] = typer.Option(None, "--language", help="Language: javascript or typescript"),
    p5_mode: Optional[str] = typer.Option(None, "--p5-mode", help="p5.js mode: global or instance"),
    include_prerelease: bool = typer.Option(False, "--include-prerelease", help="Offer pre-release p5.js versions"),
    no_git: bool = typer.Option(False, "--no-git", help="Skip git repository initialization"),
    skip_tls: bool = typer.Option(False, "--skip-tls", help="Skip SSL/TLS verification (not recommended)"),
    debug: bool = typer.Option(False, "--debug", help="Show verbose diagnostic output for network and extraction failures"),
    github_token: str = typer.Option(None, "--github-token", help="GitHub token to use for template downloads (or set GH_TOKEN or GITHUB_TOKEN environment variable)"),
):
    """
    Create a new p5.js project.

    Examples:
        create-p5 init my-sketch
        create-p5 init my-sketch --version 1.9.0 --mode local
        create-p5 init my-sketch --language typescript --p5-mode instance
        create-p5 init my-sketch --template user/repo/examples/basic#main
        create-p5 init my-sketch --template https://github.com/user/repo/tree/main/template
    """
    setup_logging(debug)
    show_banner()

    project_path = Path(project_name).resolve()
    if project_path.exists() and any(project_path.iterdir()):
        _fail(
            f"Directory '[cyan]{project_name}[/cyan]' already exists\n"
            "Please choose a different project name or remove the existing directory.",
            title="Directory Conflict",
        )

    if template and not is_remote_template_spec(template) and template not in BUILTIN_TEMPLATES:
        _fail(f"Unknown template '{template}'. Choose from: {', '.join(BUILTIN_TEMPLATES)} or a GitHub spec")

    # A built-in template decides language and p5 mode unless they are passed;
    # remote templates default to javascript in global mode
    if template is None:
        selected_language = _choose(language, LANGUAGE_CHOICES, "Choose a language:", "javascript", "language")
        selected_p5_mode = _choose(p5_mode, P5_MODE_CHOICES, "Choose p5.js mode:", "global", "p5.js mode")
    else:
        builtin = template in BUILTIN_TEMPLATES
        selected_language = language or (
            "typescript" if builtin and template.startswith("typescript") else "javascript"
        )
        selected_p5_mode = p5_mode or ("instance" if builtin and template.endswith("instance") else "global")
    if selected_p5_mode not in P5_MODES or selected_language not in LANGUAGES:
        _fail(f"Invalid language '{selected_language}' or p5.js mode '{selected_p5_mode}'")
    selected_template = template or template_for(selected_language, selected_p5_mode)
    selected_mode = _choose(mode, DELIVERY_MODE_CHOICES, "Choose delivery mode:", "cdn", "delivery mode")

    client = build_client(skip_tls=skip_tls)
    try:
        selected_version = _resolve_version(version, include_prerelease, client)
    except CreateP5Error as e:
        client.close()
        _fail(str(e), title="Version Error")

    setup_lines = [
        "[cyan]p5.js Project Setup[/cyan]",
        "",
        f"{'Project':<15} [green]{project_path.name}[/green]",
        f"{'Target Path':<15} [dim]{project_path}[/dim]",
        f"{'Template':<15} [yellow]{selected_template}[/yellow]",
        f"{'p5.js':<15} [yellow]{selected_version}[/yellow]",
        f"{'Delivery':<15} [yellow]{selected_mode}[/yellow]",
    ]
    console.print(Panel("\n".join(setup_lines), border_style="cyan", padding=(1, 2)))

    should_init_git = not no_git and check_tool("git")
    if not no_git and not should_init_git:
        console.print("[yellow]Git not found - will skip repository initialization[/yellow]")

    tracker = StepTracker("Create p5.js Project")
    for key, label in [
        ("template", "Fetch template"),
        ("script", "Inject p5.js script tag"),
        ("lib", "Download p5.js files"),
        ("types", "Download type definitions"),
        ("config", "Write project config"),
        ("git", "Initialize git repository"),
        ("final", "Finalize"),
    ]:
        tracker.add(key, label)

    created_dir = not project_path.exists()
    with Live(tracker.render(), console=console, refresh_per_second=8, transient=True) as live:
        tracker.attach_refresh(lambda: live.update(tracker.render()))
        try:
            tracker.start("template", selected_template)
            scaffold_project(
                project_path,
                template=selected_template,
                version=selected_version,
                mode=selected_mode,
                language=selected_language,
                p5_mode=selected_p5_mode,
                client=client,
                github_token=github_token,
                on_step=tracker.complete,
            )
            if selected_mode != "local":
                tracker.skip("lib", "cdn delivery")
            if selected_language != "typescript":
                tracker.skip("types", "javascript")

            if no_git:
                tracker.skip("git", "--no-git flag")
            elif is_git_repo(project_path):
                tracker.complete("git", "existing repo detected")
            elif should_init_git:
                tracker.start("git")
                if init_git_repo(project_path, quiet=True, include_lib=selected_mode == "local"):
                    tracker.complete("git", "initialized")
                else:
                    tracker.error("git", "init failed")
            else:
                tracker.skip("git", "git not available")

            tracker.complete("final", "project ready")
        except (CreateP5Error, OSError) as e:
            for key in ("template", "script", "lib", "types", "config"):
                if tracker.status(key) == "running":
                    tracker.error(key, str(e))
            tracker.error("final", str(e))
            console.print(Panel(f"Project creation failed: {e}", title="Failure", border_style="red"))
            if debug:
                _env_pairs = [
                    ("Python", sys.version.split()[0]),
                    ("Platform", sys.platform),
                    ("CWD", str(Path.cwd())),
                ]
                _label_width = max(len(k) for k, _ in _env_pairs)
                env_lines = [f"{k.ljust(_label_width)} → [bright_black]{v}[/bright_black]" for k, v in _env_pairs]
                console.print(Panel("\n".join(env_lines), title="Debug Environment", border_style="magenta"))
            if created_dir and project_path.exists():
                shutil.rmtree(project_path)
            raise typer.Exit(1)
        finally:
            client.close()

    console.print(tracker.render())
    console.print("\n[bold green]Project ready.[/bold green]")

    steps_lines = [f"1. Go to the project folder: [cyan]cd {project_name}[/cyan]"]
    if selected_language == "typescript":
        steps_lines.append("2. Compile the sketch: [cyan]npx tsc[/cyan]")
        steps_lines.append("3. Open [cyan]index.html[/cyan] in your browser")
    else:
        steps_lines.append("2. Open [cyan]index.html[/cyan] in your browser")
    console.print()
    console.print(Panel("\n".join(steps_lines), title="Next Steps", border_style="cyan", padding=(1, 2)))


@app.command()
def update(
    project_dir: Path = typer.Argument(Path("."), help="Project directory to update"),
    version: Optional[str] = typer.Option(None, "--version", "-v", help="New p5.js version (or 'latest')"),
    mode: Optional[str] = typer.Option(None, "--mode", help="New delivery mode: cdn or local"),
    delete_lib: bool = typer.Option(False, "--delete-lib", help="Remove lib/ when switching to cdn delivery"),
    include_prerelease: bool = typer.Option(False, "--include-prerelease", help="Offer pre-release p5.js versions"),
    skip_tls: bool = typer.Option(False, "--skip-tls", help="Skip SSL/TLS verification (not recommended)"),
    debug: bool = typer.Option(False, "--debug", help="Show verbose diagnostic output"),
):
    """Update the p5.js version or delivery mode of an existing project."""
    setup_logging(debug)
    try:
        config = load_project_config(project_dir)
    except CreateP5Error as e:
        _fail(str(e))

    table = Table.grid(padding=(0, 1))
    table.add_column(justify="left", style="yellow", width=24)
    table.add_column(justify="left", style="white")
    table.add_row("p5.js version", config.version)
    table.add_row("Delivery mode", config.mode)
    table.add_row("Template", config.template or "-")
    table.add_row("TypeScript definitions", config.types_version or "none")
    table.add_row("Last updated", config.last_updated)
    console.print(Panel(table, title="Current project configuration", border_style="cyan", padding=(1, 2)))

    if version or mode:
        actions = [a for a, requested in (("version", version), ("mode", mode)) if requested]
    elif _interactive():
        actions = [select_with_arrows(console, UPDATE_ACTION_CHOICES, "What would you like to update?", "version")]
    else:
        _fail("Nothing to update: pass --version and/or --mode")

    if actions == ["cancel"]:
        console.print("[yellow]Update cancelled.[/yellow]")
        return

    client = build_client(skip_tls=skip_tls)
    try:
        if "version" in actions:
            # update_version resolves an explicit request against the catalog itself
            new_version = version or _resolve_version(None, include_prerelease, client)
            config = update_version(project_dir, new_version, client=client)
            console.print(f"[green]✓[/green] p5.js updated to [cyan]{config.version}[/cyan]")
        if "mode" in actions:
            new_mode = mode or ("local" if config.mode == "cdn" else "cdn")
            remove_lib = delete_lib
            if new_mode == "cdn" and not delete_lib and _interactive() and (project_dir / LIB_DIRNAME).is_dir():
                remove_lib = typer.confirm("Delete the lib/ directory?", default=False)
            previous = config.mode
            config = switch_mode(project_dir, new_mode, delete_lib=remove_lib, client=client)
            if new_mode == previous:
                console.print(f"[dim]Already using {new_mode} delivery[/dim]")
            else:
                console.print(f"[green]✓[/green] Delivery mode switched to [cyan]{config.mode}[/cyan]")
    except CreateP5Error as e:
        _fail(f"Update failed: {e}", title="Failure")
    finally:
        client.close()

    console.print(f"[dim]Saved {CONFIG_FILENAME}[/dim]")


@app.command()
def versions(
    include_prerelease: bool = typer.Option(False, "--include-prerelease", help="Include pre-release versions"),
    limit: int = typer.Option(VERSION_DISPLAY_LIMIT, "--limit", help="Maximum number of versions to show (0 for all)"),
    json_output: bool = typer.Option(False, "--json", help="Print the full catalog as JSON"),
    skip_tls: bool = typer.Option(False, "--skip-tls", help="Skip SSL/TLS verification (not recommended)"),
):
    """List available p5.js versions."""
    with build_client(skip_tls=skip_tls) as client:
        try:
            catalog = fetch_versions(include_prerelease, client=client)
        except CreateP5Error as e:
            _fail(str(e), title="Registry Error")

    if json_output:
        typer.echo(dump_catalog(catalog))
        return

    shown = catalog.versions[:limit] if limit > 0 else catalog.versions
    tree = Tree(f"[cyan]p5.js versions[/cyan] [dim](latest {catalog.latest})[/dim]", guide_style="grey50")
    for v in shown:
        label = f"[green]{v}[/green] [dim](latest)[/dim]" if v == catalog.latest else v
        if not is_stable_version(v):
            label = f"[yellow]{v}[/yellow] [dim](pre-release)[/dim]"
        tree.add(label)
    console.print(tree)
    hidden = len(catalog.versions) - len(shown)
    if hidden > 0:
        console.print(f"[dim]{hidden} older version(s) hidden; use --limit 0 to show all[/dim]")


@app.command()
def check():
    """Check that optional tools are installed."""
    show_banner()
    console.print("[bold]Checking for installed tools...[/bold]\n")

    tracker = StepTracker("Check Available Tools")
    tracker.add("git", "Git version control (templates, repository init)")
    tracker.add("tsc", "TypeScript compiler")

    git_ok = check_tool_for_tracker("git", tracker)
    tsc_ok = check_tool_for_tracker("tsc", tracker)

    console.print(tracker.render())
    console.print("\n[bold green]create-p5 is ready to use![/bold green]")

    if not git_ok:
        console.print("[dim]Tip: Install git for faster template downloads and repository management[/dim]")
    if not tsc_ok:
        console.print("[dim]Tip: Install TypeScript (npm i -g typescript) for TypeScript sketches[/dim]")


def main():
    app()


if __name__ == "__main__":
    main()
