"""Tests for fetching templates: git sparse clone, raw file and codeload archive."""

import shutil
import subprocess

import pytest

from create_p5 import github_fallback
from create_p5.errors import FetchError, InvalidSpecError
from create_p5.github_fallback import (
    download_github_archive,
    download_single_file,
    fetch_template,
    is_single_file,
    sparse_clone,
)
from create_p5.template_spec import TemplateReference
from conftest import make_tarball

RAW = "https://raw.githubusercontent.com/user/repo/main"
ARCHIVE = "https://codeload.github.com/user/repo/tar.gz/main"
DEFAULT_RAW = "https://raw.githubusercontent.com/user/repo/HEAD"
DEFAULT_ARCHIVE = "https://codeload.github.com/user/repo/tar.gz/HEAD"

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


class TestIsSingleFile:
    @pytest.mark.parametrize(
        "path",
        ["sketch.js", "src/index.html", "shaders/blur.frag", "assets/logo.PNG", "FILE.JS", "bundle.tar.gz"],
    )
    def test_files(self, path):
        assert is_single_file(path)

    @pytest.mark.parametrize("path", ["", None, "examples", "v1.0", "my.folder", "trailing.", "dir/"])
    def test_directories(self, path):
        assert not is_single_file(path)


class TestDownloadSingleFile:
    def test_writes_basename(self, server, http_client, tmp_path):
        server.add(f"{RAW}/examples/sketch.js", content=b"function setup() {}")

        dest = download_single_file("user", "repo", "main", "examples/sketch.js", tmp_path, client=http_client)

        assert dest == tmp_path / "sketch.js"
        assert dest.read_bytes() == b"function setup() {}"

    def test_follows_redirect(self, server, http_client, tmp_path):
        server.redirect(f"{RAW}/sketch.js", "https://cdn.example.com/sketch.js", status=301)
        server.add("https://cdn.example.com/sketch.js", content=b"ok")

        download_single_file("user", "repo", "main", "sketch.js", tmp_path, client=http_client)

        assert (tmp_path / "sketch.js").read_bytes() == b"ok"
        assert len(server.requests) == 2

    def test_relative_location(self, server, http_client, tmp_path):
        server.redirect(f"{RAW}/sketch.js", "/user/repo/main/moved.js", status=307)
        server.add(f"{RAW}/moved.js", content=b"moved")

        download_single_file("user", "repo", "main", "sketch.js", tmp_path, client=http_client)

        assert (tmp_path / "sketch.js").read_bytes() == b"moved"

    def test_redirect_loop_is_bounded(self, server, http_client, tmp_path):
        server.redirect(f"{RAW}/sketch.js", f"{RAW}/sketch.js")

        with pytest.raises(FetchError, match="Too many redirects"):
            download_single_file("user", "repo", "main", "sketch.js", tmp_path, client=http_client)
        assert len(server.requests) == github_fallback.MAX_REDIRECTS + 1

    def test_redirect_without_location(self, server, http_client, tmp_path):
        server.add(f"{RAW}/sketch.js", 302)

        with pytest.raises(FetchError, match="Redirect without Location header: HTTP 302"):
            download_single_file("user", "repo", "main", "sketch.js", tmp_path, client=http_client)

    def test_not_found(self, http_client, tmp_path):
        with pytest.raises(FetchError, match="File not found") as excinfo:
            download_single_file("user", "repo", "main", "missing.js", tmp_path, client=http_client)
        assert excinfo.value.status_code == 404
        assert not (tmp_path / "missing.js").exists()

    def test_server_error(self, server, http_client, tmp_path):
        server.add(f"{RAW}/sketch.js", 500)

        with pytest.raises(FetchError, match="HTTP 500") as excinfo:
            download_single_file("user", "repo", "main", "sketch.js", tmp_path, client=http_client)
        assert excinfo.value.status_code == 500

    def test_sends_token(self, server, http_client, tmp_path):
        server.add(f"{RAW}/sketch.js", content=b"x")

        download_single_file(
            "user", "repo", "main", "sketch.js", tmp_path, client=http_client, github_token="abc123"
        )

        assert server.requests[0].headers["Authorization"] == "Bearer abc123"

    def test_token_from_environment(self, server, http_client, tmp_path, monkeypatch):
        monkeypatch.setenv("GH_TOKEN", " envtoken ")
        server.add(f"{RAW}/sketch.js", content=b"x")

        download_single_file("user", "repo", "main", "sketch.js", tmp_path, client=http_client)

        assert server.requests[0].headers["Authorization"] == "Bearer envtoken"


class TestDownloadGithubArchive:
    FILES = {
        "README.md": b"# repo",
        "examples/basic/index.html": b"<html></html>",
        "examples/basic/sketch.js": b"function draw() {}",
        "examples/other/sketch.js": b"// other",
    }

    def test_whole_repository(self, server, http_client, tmp_path):
        server.add(ARCHIVE, content=make_tarball(self.FILES))

        download_github_archive("user", "repo", "main", "", tmp_path, client=http_client)

        assert (tmp_path / "README.md").read_bytes() == b"# repo"
        assert (tmp_path / "examples" / "other" / "sketch.js").exists()
        assert not (tmp_path / "repo-main").exists()

    def test_subpath_is_rerooted(self, server, http_client, tmp_path):
        server.add(ARCHIVE, content=make_tarball(self.FILES))

        download_github_archive("user", "repo", "main", "examples/basic", tmp_path, client=http_client)

        assert sorted(p.name for p in tmp_path.iterdir()) == ["index.html", "sketch.js"]
        assert (tmp_path / "sketch.js").read_bytes() == b"function draw() {}"

    def test_missing_subpath(self, server, http_client, tmp_path):
        server.add(ARCHIVE, content=make_tarball(self.FILES))

        with pytest.raises(FetchError, match="Path not found in archive: examples/nope"):
            download_github_archive("user", "repo", "main", "examples/nope", tmp_path, client=http_client)

    def test_skips_parent_traversal(self, server, http_client, tmp_path):
        target = tmp_path / "project"
        server.add(ARCHIVE, content=make_tarball({"../escape.txt": b"bad", "ok.txt": b"good"}))

        download_github_archive("user", "repo", "main", "", target, client=http_client)

        assert (target / "ok.txt").exists()
        assert not (tmp_path / "escape.txt").exists()

    def test_archive_not_found(self, http_client, tmp_path):
        with pytest.raises(FetchError, match="Archive not found: user/repo@main"):
            download_github_archive("user", "repo", "main", "", tmp_path, client=http_client)

    def test_corrupt_archive(self, server, http_client, tmp_path):
        server.add(ARCHIVE, content=b"not a tarball")

        with pytest.raises(FetchError, match="Failed to extract archive"):
            download_github_archive("user", "repo", "main", "", tmp_path, client=http_client)


class TestFetchTemplate:
    def test_invalid_spec(self, tmp_path):
        with pytest.raises(InvalidSpecError):
            fetch_template("https://gitlab.com/user/repo", tmp_path, use_git=False)

    def test_single_file_without_git(self, server, http_client, tmp_path):
        server.add(f"{DEFAULT_RAW}/sketches/sketch.js", content=b"draw")

        ref = fetch_template("user/repo/sketches/sketch.js", tmp_path, client=http_client, use_git=False)

        assert ref.subpath == "sketches/sketch.js"
        assert (tmp_path / "sketch.js").read_bytes() == b"draw"

    def test_directory_from_url(self, server, http_client, tmp_path):
        server.add(
            "https://codeload.github.com/user/repo/tar.gz/dev",
            content=make_tarball({"tpl/index.html": b"<html></html>"}, wrapper="repo-dev"),
        )

        ref = fetch_template(
            "https://github.com/user/repo/tree/dev/tpl", tmp_path, client=http_client, use_git=False
        )

        assert ref.ref == "dev"
        assert (tmp_path / "index.html").exists()

    def test_git_failure_falls_back(self, server, http_client, tmp_path, monkeypatch):
        def failing_clone(reference, target_dir):
            raise FetchError("git failed")

        monkeypatch.setattr(github_fallback.shutil, "which", lambda tool: "/usr/bin/git")
        monkeypatch.setattr(github_fallback, "sparse_clone", failing_clone)
        server.add(f"{DEFAULT_RAW}/sketch.js", content=b"fallback")

        fetch_template("user/repo/sketch.js", tmp_path, client=http_client)

        assert (tmp_path / "sketch.js").read_bytes() == b"fallback"

    def test_git_success_skips_http(self, server, http_client, tmp_path, monkeypatch):
        cloned = []
        monkeypatch.setattr(github_fallback.shutil, "which", lambda tool: "/usr/bin/git")
        monkeypatch.setattr(github_fallback, "sparse_clone", lambda reference, target_dir: cloned.append(reference))

        ref = fetch_template("user/repo", tmp_path, client=http_client)

        assert cloned == [ref]
        assert server.requests == []

    def test_unpinned_uses_default_branch(self, server, http_client, tmp_path):
        server.add(DEFAULT_ARCHIVE, content=make_tarball({"index.html": b"<html></html>"}, wrapper="repo-3f2a9c1"))

        ref = fetch_template("user/repo", tmp_path, client=http_client, use_git=False)

        assert ref.ref == "HEAD"
        assert server.requested_urls() == [DEFAULT_ARCHIVE]
        assert (tmp_path / "index.html").exists()


def git(*args, cwd):
    subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def origin(tmp_path):
    """Local repository whose only branch is ``trunk``."""
    repo = tmp_path / "origin"
    files = {
        "README.md": "# tmpl",
        "examples/basic/index.html": "<html></html>",
        "examples/basic/sketch.js": "function setup() {}",
        "examples/other/sketch.js": "// other",
    }
    for name, text in files.items():
        path = repo / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
    git("init", "--quiet", "--initial-branch=trunk", cwd=repo)
    git("add", ".", cwd=repo)
    git("commit", "--quiet", "-m", "initial", cwd=repo)
    return repo


@requires_git
class TestSparseClone:
    def test_directory_subpath(self, origin, tmp_path):
        target = tmp_path / "project"
        reference = TemplateReference("acme", "tmpl", subpath="examples/basic")

        sparse_clone(reference, target, clone_url=origin.as_uri())

        assert sorted(p.name for p in target.iterdir()) == ["index.html", "sketch.js"]
        assert (target / "sketch.js").read_text() == "function setup() {}"

    def test_whole_repository_skips_git_dir(self, origin, tmp_path):
        target = tmp_path / "project"

        sparse_clone(TemplateReference("acme", "tmpl"), target, clone_url=origin.as_uri())

        assert (target / "README.md").read_text() == "# tmpl"
        assert (target / "examples" / "other" / "sketch.js").exists()
        assert not (target / ".git").exists()

    def test_single_file(self, origin, tmp_path):
        target = tmp_path / "project"
        reference = TemplateReference("acme", "tmpl", subpath="examples/basic/sketch.js")

        sparse_clone(reference, target, clone_url=origin.as_uri())

        assert [p.name for p in target.iterdir()] == ["sketch.js"]

    def test_pinned_branch(self, origin, tmp_path):
        target = tmp_path / "project"

        sparse_clone(TemplateReference("acme", "tmpl", "trunk"), target, clone_url=origin.as_uri())

        assert (target / "README.md").exists()

    def test_unknown_branch(self, origin, tmp_path):
        with pytest.raises(FetchError, match="git failed for acme/tmpl#nope"):
            sparse_clone(TemplateReference("acme", "tmpl", "nope"), tmp_path / "project", clone_url=origin.as_uri())

    def test_missing_path(self, origin, tmp_path):
        reference = TemplateReference("acme", "tmpl", subpath="examples/missing")

        with pytest.raises(FetchError, match="Path not found in repository: examples/missing") as excinfo:
            sparse_clone(reference, tmp_path / "project", clone_url=origin.as_uri())
        assert excinfo.value.status_code == 404
