"""Create a p5.js project from a built-in or remote template."""

import logging
import shutil
from pathlib import Path
from typing import Callable, Optional

import httpx

from .config import CONFIG_FILENAME, ProjectConfig, create_config
from .github_fallback import fetch_template
from .html_manager import HTMLManager
from .http_client import client_scope
from .template_spec import is_remote_template_spec
from .versions import download_p5_files, download_type_definitions

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

BUILTIN_TEMPLATES = {
    "basic": "JavaScript, global mode",
    "instance": "JavaScript, instance mode",
    "typescript": "TypeScript, global mode",
    "typescript-instance": "TypeScript, instance mode",
}

INDEX_FILENAME = "index.html"
LIB_DIRNAME = "lib"
TYPES_DIRNAME = "types"


def template_for(language: str = "javascript", p5_mode: str = "global") -> str:
    """Return the built-in template name for a language / p5 mode pair."""
    name = "typescript" if language == "typescript" else "basic"
    if p5_mode == "instance":
        name = "instance" if name == "basic" else "typescript-instance"
    return name


def builtin_template_path(name: str) -> Path:
    if name not in BUILTIN_TEMPLATES:
        raise ValueError(f"Unknown template '{name}'. Choose from: {', '.join(BUILTIN_TEMPLATES)}")
    return TEMPLATES_DIR / name


def copy_template_files(template_path: Path, target_path: Path) -> None:
    """Recursively copy a template directory, creating ``target_path``."""
    shutil.copytree(template_path, target_path, dirs_exist_ok=True)


def write_script_tag(project_path: Path, version: str, mode: str) -> bool:
    """Bind index.html to ``version``; False when there is nothing to update."""
    index = Path(project_path) / INDEX_FILENAME
    if not index.is_file():
        logger.debug("No %s in %s; skipping script tag", INDEX_FILENAME, project_path)
        return False
    mgr = HTMLManager(index.read_text(encoding="utf-8"))
    if not mgr.update_p5_script(version, mode):
        logger.warning("%s has no <head>; p5.js script tag not added", index)
        return False
    index.write_text(mgr.serialize(), encoding="utf-8")
    return True


def scaffold_project(
    project_path: Path,
    *,
    template: str,
    version: str,
    mode: str = "cdn",
    language: str = "javascript",
    p5_mode: str = "global",
    client: httpx.Client | None = None,
    github_token: str | None = None,
    use_git: bool = True,
    on_step: Optional[Callable[[str, str], None]] = None,
) -> ProjectConfig:
    """Populate ``project_path`` and write its .p5-config.json.

    ``on_step(key, detail)`` is called as each stage finishes so the CLI can
    drive its step tracker. Any exception means the project is incomplete.
    """
    project_path = Path(project_path)
    notify = on_step or (lambda key, detail: None)

    with client_scope(client) as http:
        if is_remote_template_spec(template):
            reference = fetch_template(
                template, project_path, client=http, use_git=use_git, github_token=github_token
            )
            notify("template", reference.spec)
        else:
            copy_template_files(builtin_template_path(template), project_path)
            notify("template", template)

        injected = write_script_tag(project_path, version, mode)
        notify("script", f"p5@{version} ({mode})" if injected else "no index.html to update")

        if mode == "local":
            download_p5_files(version, project_path / LIB_DIRNAME, client=http)
            notify("lib", f"{LIB_DIRNAME}/")

        types_version = None
        if language == "typescript":
            types_version = download_type_definitions(
                version, project_path / TYPES_DIRNAME, p5_mode=p5_mode, client=http
            )
            notify("types", types_version)

    config = create_config(
        project_path / CONFIG_FILENAME,
        version=version,
        mode=mode,
        language=language,
        p5_mode=p5_mode,
        types_version=types_version,
        template=template,
    )
    notify("config", CONFIG_FILENAME)
    return config
