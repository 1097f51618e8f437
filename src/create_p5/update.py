"""Update an existing project's p5.js version or delivery mode."""

import logging
import shutil
from pathlib import Path

import httpx

from .config import (
    CONFIG_FILENAME,
    ProjectConfig,
    is_valid_delivery_mode,
    migrate_config_if_needed,
    read_config,
    write_config,
)
from .errors import ConfigError
from .http_client import client_scope
from .scaffold import LIB_DIRNAME, TYPES_DIRNAME, write_script_tag
from .versions import download_p5_files, download_type_definitions, resolve_version_request

logger = logging.getLogger(__name__)


def load_project_config(project_dir: Path) -> ProjectConfig:
    """Read the project's config, migrating the legacy filename first."""
    project_dir = Path(project_dir)
    migration = migrate_config_if_needed(project_dir)
    if migration.error:
        logger.warning("Config migration skipped: %s", migration.error)
    elif migration.migrated:
        logger.info("Renamed legacy config to %s", CONFIG_FILENAME)

    config = read_config(project_dir / CONFIG_FILENAME)
    if config is None:
        raise ConfigError(
            f"No {CONFIG_FILENAME} found in {project_dir}. This does not appear to be a create-p5 project."
        )
    return config


def update_version(project_dir: Path, new_version: str, *, client: httpx.Client | None = None) -> ProjectConfig:
    """Bind the project to ``new_version`` (``latest``, partial or exact)."""
    project_dir = Path(project_dir)
    config = load_project_config(project_dir)

    with client_scope(client) as http:
        new_version = resolve_version_request(new_version, client=http)
        write_script_tag(project_dir, new_version, config.mode)
        if config.mode == "local":
            download_p5_files(new_version, project_dir / LIB_DIRNAME, client=http)
        if config.types_version:
            config.types_version = download_type_definitions(
                new_version,
                project_dir / TYPES_DIRNAME,
                p5_mode=config.p5_mode or "global",
                client=http,
            )

    logger.debug("Updated %s from %s to %s", project_dir, config.version, new_version)
    config.version = new_version
    config.touch()
    write_config(project_dir / CONFIG_FILENAME, config)
    return config


def switch_mode(
    project_dir: Path,
    new_mode: str,
    *,
    delete_lib: bool = False,
    client: httpx.Client | None = None,
) -> ProjectConfig:
    """Switch between CDN and local delivery.

    Switching to local downloads p5.js into lib/; switching to CDN removes
    lib/ only when ``delete_lib`` is set.
    """
    if not is_valid_delivery_mode(new_mode):
        raise ConfigError(f"Invalid delivery mode '{new_mode}'. Choose from: cdn, local")
    project_dir = Path(project_dir)
    config = load_project_config(project_dir)
    if config.mode == new_mode:
        return config

    write_script_tag(project_dir, config.version, new_mode)
    if new_mode == "local":
        download_p5_files(config.version, project_dir / LIB_DIRNAME, client=client)
    elif delete_lib:
        lib_dir = project_dir / LIB_DIRNAME
        if lib_dir.is_dir():
            shutil.rmtree(lib_dir)

    config.mode = new_mode
    config.touch()
    write_config(project_dir / CONFIG_FILENAME, config)
    return config
