"""Tests for finding and rewriting the p5.js <script> tag."""

import pytest

from create_p5.html_manager import (
    HTMLManager,
    ScriptPreferences,
    build_script_url,
    inject_p5_script,
)

TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <title>sketch</title>
  <!-- P5JS_SCRIPT_TAG -->
</head>
<body>
  <script src="sketch.js"></script>
</body>
</html>
"""


def page(src: str) -> str:
    return f'<html><head><script src="{src}"></script></head><body></body></html>'


class TestBuildScriptUrl:
    def test_default_cdn(self):
        assert build_script_url("1.9.0") == "https://cdn.jsdelivr.net/npm/p5@1.9.0/lib/p5.js"

    def test_minified_cdnjs(self):
        prefs = ScriptPreferences(is_minified=True, cdn_provider="cdnjs")
        assert build_script_url("1.9.0", "cdn", prefs) == (
            "https://cdnjs.cloudflare.com/ajax/libs/p5.js/1.9.0/p5.min.js"
        )

    def test_local(self):
        assert build_script_url("1.9.0", "local") == "./lib/p5.js"
        assert build_script_url("1.9.0", "local", ScriptPreferences(is_minified=True)) == "./lib/p5.min.js"

    def test_unknown_provider_falls_back(self):
        prefs = ScriptPreferences(cdn_provider="nowhere")
        assert build_script_url("1.9.0", "cdn", prefs).startswith("https://cdn.jsdelivr.net/")


class TestFindP5Script:
    @pytest.mark.parametrize(
        ("src", "version", "minified", "provider"),
        [
            ("https://cdn.jsdelivr.net/npm/p5@1.9.0/lib/p5.js", "1.9.0", False, "jsdelivr"),
            ("https://cdn.jsdelivr.net/npm/p5@2.0.0-beta.1/lib/p5.min.js", "2.0.0-beta.1", True, "jsdelivr"),
            ("https://cdnjs.cloudflare.com/ajax/libs/p5.js/1.4.0/p5.min.js", "1.4.0", True, "cdnjs"),
            ("https://unpkg.com/p5@1.9.0/lib/p5.js", "1.9.0", False, "unpkg"),
            ("./lib/p5.min.js", "local", True, "jsdelivr"),
            ("lib/p5.js", "local", False, "jsdelivr"),
        ],
    )
    def test_recognizes(self, src, version, minified, provider):
        ref = HTMLManager(page(src)).find_p5_script()
        assert ref.version == version
        assert ref.is_minified is minified
        assert ref.cdn_provider == provider

    def test_ignores_other_scripts(self):
        html = '<html><head><script src="https://example.com/p5.js"></script></head></html>'
        assert HTMLManager(html).find_p5_script() is None


class TestUpdateP5Script:
    def test_replaces_marker(self):
        mgr = HTMLManager(TEMPLATE)

        assert mgr.update_p5_script("1.9.0")

        out = mgr.serialize()
        assert "P5JS_SCRIPT_TAG" not in out
        assert '<script src="https://cdn.jsdelivr.net/npm/p5@1.9.0/lib/p5.js"></script>' in out
        assert '<script src="sketch.js"></script>' in out

    def test_keeps_provider_and_minified(self):
        mgr = HTMLManager(page("https://cdnjs.cloudflare.com/ajax/libs/p5.js/1.4.0/p5.min.js"))

        mgr.update_p5_script("1.9.0")

        assert mgr.find_p5_script().node["src"] == (
            "https://cdnjs.cloudflare.com/ajax/libs/p5.js/1.9.0/p5.min.js"
        )

    def test_cdn_to_local_keeps_minified(self):
        mgr = HTMLManager(page("https://unpkg.com/p5@1.9.0/lib/p5.min.js"))

        mgr.update_p5_script("1.9.0", "local")

        assert mgr.find_p5_script().node["src"] == "./lib/p5.min.js"

    def test_local_to_cdn_uses_default_provider(self):
        mgr = HTMLManager(page("./lib/p5.js"))

        mgr.update_p5_script("1.9.0", "cdn")

        ref = mgr.find_p5_script()
        assert ref.cdn_provider == "jsdelivr"
        assert ref.version == "1.9.0"

    def test_prepends_to_head_without_marker(self):
        mgr = HTMLManager("<html><head><title>t</title></head><body></body></html>")

        assert mgr.update_p5_script("1.9.0")

        first = mgr.soup.head.find(True)
        assert first.name == "script"

    def test_no_head_is_noop(self):
        mgr = HTMLManager("<div>fragment</div>")

        assert not mgr.update_p5_script("1.9.0")
        assert mgr.find_p5_script() is None

    def test_marker_outside_head_ignored(self):
        html = "<html><head></head><body><!-- P5JS_SCRIPT_TAG --></body></html>"
        mgr = HTMLManager(html)

        mgr.update_p5_script("1.9.0")

        assert "P5JS_SCRIPT_TAG" in mgr.serialize()
        assert mgr.soup.head.find("script") is not None

    def test_repeated_updates_keep_one_script(self):
        mgr = HTMLManager(TEMPLATE)
        mgr.update_p5_script("1.9.0")
        mgr.update_p5_script("2.1.1")

        srcs = [s.get("src") for s in mgr.soup.find_all("script")]
        assert srcs == ["https://cdn.jsdelivr.net/npm/p5@2.1.1/lib/p5.js", "sketch.js"]


class TestSerialize:
    def test_single_doctype(self):
        out = HTMLManager(TEMPLATE).serialize()
        assert out.startswith("<!DOCTYPE html>\n<html>")
        assert out.count("<!DOCTYPE") == 1

    def test_adds_missing_doctype(self):
        assert HTMLManager("<html></html>").serialize() == "<!DOCTYPE html>\n<html></html>"

    @pytest.mark.parametrize(
        "prefs",
        [
            ScriptPreferences(),
            ScriptPreferences(is_minified=True, cdn_provider="cdnjs"),
            ScriptPreferences(is_minified=False, cdn_provider="unpkg"),
        ],
    )
    def test_inserted_script_is_detected(self, prefs):
        mgr = HTMLManager(TEMPLATE)
        mgr.update_p5_script("1.9.0", "cdn", prefs)

        ref = HTMLManager(mgr.serialize()).find_p5_script()

        assert ref.version == "1.9.0"
        assert ref.is_minified is prefs.is_minified
        assert ref.cdn_provider == (prefs.cdn_provider or "jsdelivr")

    def test_inject_then_find(self):
        out = inject_p5_script(TEMPLATE, "1.11.3", "local")
        ref = HTMLManager(out).find_p5_script()
        assert ref.version == "local"
        assert ref.node["src"] == "./lib/p5.js"
