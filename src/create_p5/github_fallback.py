"""Fetch remote templates from GitHub.

The fast path is a shallow sparse ``git clone``. When git is missing or the
clone fails, the template is downloaded over plain HTTPS instead: a single
file from raw.githubusercontent.com, or a whole tree from the codeload
tarball endpoint.
"""

import logging
import os
import shutil
import subprocess
import tarfile
import tempfile
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional
from urllib.parse import urljoin

import httpx

from .errors import FetchError, InvalidSpecError
from .http_client import client_scope
from .template_spec import TemplateReference, resolve_template_reference

logger = logging.getLogger(__name__)

RAW_HOST = "https://raw.githubusercontent.com"
ARCHIVE_HOST = "https://codeload.github.com"

MAX_REDIRECTS = 5
REDIRECT_STATUSES = {301, 302, 307, 308}

KNOWN_FILE_EXTENSIONS = (
    ".js", ".mjs", ".cjs", ".ts", ".jsx", ".tsx",
    ".html", ".htm", ".css", ".json",
    ".glsl", ".vert", ".frag",
    ".md", ".txt",
    ".svg", ".png", ".jpg", ".jpeg", ".gif",
    ".tar.gz",
)


def _github_token(cli_token: str | None = None) -> str | None:
    """Return sanitized GitHub token (cli arg takes precedence) or None."""
    return ((cli_token or os.getenv("GH_TOKEN") or os.getenv("GITHUB_TOKEN") or "").strip()) or None


def _github_auth_headers(cli_token: str | None = None) -> dict:
    """Return Authorization header dict only when a non-empty token exists."""
    token = _github_token(cli_token)
    return {"Authorization": f"Bearer {token}"} if token else {}


def is_single_file(path: Optional[str]) -> bool:
    """Return True if ``path`` names a file rather than a directory.

    The last segment needs a real extension from KNOWN_FILE_EXTENSIONS, so
    ``v1.0`` or ``my.folder`` are treated as directories.
    """
    if not path:
        return False
    name = path.rstrip("/").rsplit("/", 1)[-1].lower()
    if "." not in name or name.endswith("."):
        return False
    return name.endswith(KNOWN_FILE_EXTENSIONS)


@contextmanager
def _open_following_redirects(
    client: httpx.Client,
    url: str,
    *,
    what: str,
    not_found: str,
    headers: dict | None = None,
    max_redirects: int = MAX_REDIRECTS,
) -> Iterator[httpx.Response]:
    """Yield a streaming 2xx response for ``url``, following redirects.

    At most ``max_redirects`` redirects are followed; the response is closed
    when the block exits.
    """
    current = url
    for _ in range(max_redirects + 1):
        logger.debug("GET %s", current)
        try:
            request = client.build_request("GET", current, headers=headers)
            response = client.send(request, stream=True, follow_redirects=False)
        except httpx.HTTPError as e:
            raise FetchError(f"Network error while downloading {what}: {e}") from e

        status = response.status_code
        if status in REDIRECT_STATUSES:
            location = response.headers.get("location")
            response.close()
            if not location:
                raise FetchError(f"Redirect without Location header: HTTP {status}", status_code=status)
            current = urljoin(current, location)
            logger.debug("Redirected (HTTP %s) to %s", status, current)
            continue

        try:
            if status == 404:
                raise FetchError(not_found, status_code=404)
            if not 200 <= status < 300:
                raise FetchError(f"Failed to download {what}: HTTP {status}", status_code=status)
            yield response
        finally:
            response.close()
        return

    raise FetchError(f"Too many redirects (more than {max_redirects}) while downloading {what}")


def download_single_file(
    owner: str,
    repo: str,
    ref: str,
    subpath: str,
    target_dir: Path,
    *,
    client: httpx.Client | None = None,
    github_token: str | None = None,
) -> Path:
    """Download one file from raw.githubusercontent.com into ``target_dir``."""
    url = f"{RAW_HOST}/{owner}/{repo}/{ref}/{subpath}"
    target_dir = Path(target_dir)
    with client_scope(client) as http:
        with _open_following_redirects(
            http,
            url,
            what="file",
            not_found=f"File not found: {owner}/{repo}/{subpath}@{ref}",
            headers=_github_auth_headers(github_token),
        ) as response:
            try:
                body = response.read()
            except httpx.HTTPError as e:
                raise FetchError(f"Network error while downloading file: {e}") from e

    target_dir.mkdir(parents=True, exist_ok=True)
    dest = target_dir / PurePosixPath(subpath).name
    dest.write_bytes(body)
    logger.debug("Wrote %s (%d bytes)", dest, len(body))
    return dest


def _archive_member_path(name: str, subpath_parts: tuple[str, ...]) -> Optional[PurePosixPath]:
    """Map an archive entry to its path relative to the target directory.

    Drops the ``<repo>-<ref>/`` wrapper and, when a subpath is given, keeps
    only entries under it. Returns None for entries to skip.
    """
    parts = PurePosixPath(name).parts
    if not parts or parts[0] == "/" or ".." in parts:
        return None
    rel = parts[1:]
    if subpath_parts:
        if rel[: len(subpath_parts)] != subpath_parts:
            return None
        rel = rel[len(subpath_parts):]
    if not rel:
        return None
    return PurePosixPath(*rel)


def _extract_archive(archive_path: Path, subpath: str, target_dir: Path) -> int:
    subpath_parts = tuple(p for p in subpath.split("/") if p)
    extracted = 0
    with tarfile.open(archive_path, "r:gz") as tar:
        for member in tar:
            rel = _archive_member_path(member.name, subpath_parts)
            if rel is None:
                continue
            dest = target_dir.joinpath(*rel.parts)
            if member.isdir():
                dest.mkdir(parents=True, exist_ok=True)
                extracted += 1
            elif member.isfile():
                source = tar.extractfile(member)
                if source is None:
                    continue
                dest.parent.mkdir(parents=True, exist_ok=True)
                with source, open(dest, "wb") as f:
                    shutil.copyfileobj(source, f)
                if member.mode & 0o111:
                    dest.chmod(dest.stat().st_mode | (member.mode & 0o111))
                extracted += 1
            # links and special files are skipped
    return extracted


def download_github_archive(
    owner: str,
    repo: str,
    ref: str,
    subpath: str,
    target_dir: Path,
    *,
    client: httpx.Client | None = None,
    github_token: str | None = None,
) -> Path:
    """Download the codeload tarball for ``owner/repo@ref`` and extract it.

    With a non-empty ``subpath`` only that directory is extracted, re-rooted
    at ``target_dir``. Files written before a failure are left in place.
    """
    url = f"{ARCHIVE_HOST}/{owner}/{repo}/tar.gz/{ref}"
    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    with tempfile.TemporaryDirectory() as temp_dir:
        archive_path = Path(temp_dir) / f"{repo}-{ref.replace('/', '-')}.tar.gz"
        with client_scope(client) as http:
            with _open_following_redirects(
                http,
                url,
                what="archive",
                not_found=f"Archive not found: {owner}/{repo}@{ref}",
                headers=_github_auth_headers(github_token),
            ) as response:
                try:
                    with open(archive_path, "wb") as f:
                        for chunk in response.iter_bytes(chunk_size=8192):
                            f.write(chunk)
                except httpx.HTTPError as e:
                    raise FetchError(f"Network error while downloading archive: {e}") from e

        try:
            extracted = _extract_archive(archive_path, subpath, target_dir)
        except (tarfile.TarError, EOFError, OSError) as e:
            raise FetchError(f"Failed to extract archive {owner}/{repo}@{ref}: {e}") from e

    if subpath and extracted == 0:
        raise FetchError(f"Path not found in archive: {subpath}", status_code=404)
    logger.debug("Extracted %d entries from %s into %s", extracted, url, target_dir)
    return target_dir


def _copy_into(source: Path, target_dir: Path) -> None:
    target_dir.mkdir(parents=True, exist_ok=True)
    if source.is_file():
        shutil.copy2(source, target_dir / source.name)
        return
    for item in source.iterdir():
        if item.name == ".git":
            continue
        dest = target_dir / item.name
        if item.is_dir():
            shutil.copytree(item, dest, dirs_exist_ok=True)
        else:
            shutil.copy2(item, dest)


def sparse_clone(reference: TemplateReference, target_dir: Path, *, clone_url: str | None = None) -> Path:
    """Shallow sparse clone of ``reference`` copied into ``target_dir``.

    ``clone_url`` overrides the GitHub remote (any URL git accepts). An
    unpinned reference clones the remote's default branch. Existing files in
    ``target_dir`` are overwritten; nothing is cached.
    """
    target_dir = Path(target_dir)
    with tempfile.TemporaryDirectory() as temp_dir:
        checkout = Path(temp_dir) / reference.repo
        clone = ["git", "clone", "--quiet", "--depth", "1", "--filter=blob:none", "--sparse"]
        if reference.is_pinned:
            clone += ["--branch", reference.ref]
        clone += [clone_url or reference.clone_url, str(checkout)]
        commands = [clone]
        if reference.subpath:
            commands.append(
                ["git", "-C", str(checkout), "sparse-checkout", "set", "--no-cone", f"/{reference.subpath}"]
            )
        else:
            commands.append(["git", "-C", str(checkout), "sparse-checkout", "disable"])

        for cmd in commands:
            logger.debug("Running %s", " ".join(cmd))
            try:
                subprocess.run(cmd, check=True, capture_output=True, text=True)
            except FileNotFoundError as e:
                raise FetchError("git executable not found") from e
            except subprocess.CalledProcessError as e:
                detail = (e.stderr or "").strip() or f"exit code {e.returncode}"
                raise FetchError(f"git failed for {reference.spec}: {detail}") from e

        source = checkout.joinpath(*reference.subpath.split("/")) if reference.subpath else checkout
        if not source.exists():
            raise FetchError(f"Path not found in repository: {reference.subpath}", status_code=404)
        _copy_into(source, target_dir)
    return target_dir


def fetch_template(
    spec: str,
    target_dir: Path,
    *,
    client: httpx.Client | None = None,
    use_git: bool = True,
    github_token: str | None = None,
) -> TemplateReference:
    """Fetch the remote template ``spec`` into ``target_dir``.

    Tries a sparse git clone first and falls back to direct HTTPS downloads.
    Raises InvalidSpecError for specs that do not name a GitHub repository and
    FetchError when every strategy fails.
    """
    reference = resolve_template_reference(spec)
    if not isinstance(reference, TemplateReference):
        raise InvalidSpecError(f"Not a GitHub template reference: {spec!r}")

    if use_git and shutil.which("git"):
        try:
            sparse_clone(reference, target_dir)
            logger.debug("Cloned %s with git", reference.spec)
            return reference
        except FetchError as e:
            logger.warning("git clone failed (%s); falling back to direct download", e)
    else:
        logger.debug("git unavailable; downloading %s directly", reference.spec)

    if is_single_file(reference.subpath):
        download_single_file(
            reference.owner, reference.repo, reference.ref, reference.subpath, target_dir,
            client=client, github_token=github_token,
        )
    else:
        download_github_archive(
            reference.owner, reference.repo, reference.ref, reference.subpath, target_dir,
            client=client, github_token=github_token,
        )
    return reference
