"""Locate and rewrite the p5.js <script> tag in a project's index.html."""

import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup, Comment, Doctype, Tag

DOCTYPE = "<!DOCTYPE html>\n"
MARKER_TEXT = "P5JS_SCRIPT_TAG"
DEFAULT_CDN = "jsdelivr"

CDN_URL_TEMPLATES = {
    "jsdelivr": "https://cdn.jsdelivr.net/npm/p5@{version}/lib/{file}",
    "cdnjs": "https://cdnjs.cloudflare.com/ajax/libs/p5.js/{version}/{file}",
    "unpkg": "https://unpkg.com/p5@{version}/lib/{file}",
}

# (provider, pattern); group 1 is the version, group 2 the ".min." infix.
P5_PATTERNS = [
    ("jsdelivr", re.compile(r"^https?://cdn\.jsdelivr\.net/npm/p5@([^/]+)/lib/p5\.(min\.)?js$")),
    ("cdnjs", re.compile(r"^https?://cdnjs\.cloudflare\.com/ajax/libs/p5\.js/([^/]+)/p5\.(min\.)?js$")),
    ("unpkg", re.compile(r"^https?://unpkg\.com/p5@([^/]+)/lib/p5\.(min\.)?js$")),
    (None, re.compile(r"^(?:\./)?lib/p5\.(min\.)?js$")),
]


@dataclass
class ScriptReference:
    node: Tag
    version: str
    is_minified: bool
    cdn_provider: str


@dataclass
class ScriptPreferences:
    is_minified: bool = False
    cdn_provider: Optional[str] = None


def build_script_url(version: str, mode: str = "cdn", preferences: Optional[ScriptPreferences] = None) -> str:
    preferences = preferences or ScriptPreferences()
    file = "p5.min.js" if preferences.is_minified else "p5.js"
    if mode == "local":
        return f"./lib/{file}"
    template = CDN_URL_TEMPLATES.get(preferences.cdn_provider or DEFAULT_CDN, CDN_URL_TEMPLATES[DEFAULT_CDN])
    return template.format(version=version, file=file)


class HTMLManager:
    """Parsed HTML document with p5.js script-tag helpers.

    html.parser does not keep doctype fidelity, so any doctype is dropped on
    parse and a fixed one is written back by serialize().
    """

    def __init__(self, html: str):
        self.soup = BeautifulSoup(html, "html.parser")
        for node in list(self.soup.contents):
            if isinstance(node, Doctype):
                node.extract()

    def serialize(self) -> str:
        return DOCTYPE + str(self.soup).lstrip()

    def find_p5_script(self) -> Optional[ScriptReference]:
        for script in self.soup.find_all("script"):
            src = script.get("src") or ""
            for provider, pattern in P5_PATTERNS:
                match = pattern.match(src)
                if not match:
                    continue
                if provider is None:
                    return ScriptReference(script, "local", bool(match.group(1)), DEFAULT_CDN)
                return ScriptReference(script, match.group(1), bool(match.group(2)), provider)
        return None

    def update_p5_script(
        self,
        version: str,
        mode: str = "cdn",
        preferences: Optional[ScriptPreferences] = None,
    ) -> bool:
        """Point the document at p5.js ``version``; True if anything changed.

        An existing p5 script keeps its minified choice (and its CDN provider
        while staying on a CDN). Otherwise the P5JS_SCRIPT_TAG comment is
        replaced, or a script is prepended to <head>. Without any of those the
        document is left untouched.
        """
        existing = self.find_p5_script()
        if existing is not None:
            kept = ScriptPreferences(
                is_minified=existing.is_minified,
                cdn_provider=existing.cdn_provider if mode == "cdn" else None,
            )
            existing.node["src"] = build_script_url(version, mode, kept)
            return True

        marker = self._find_marker()
        if marker is not None:
            marker.replace_with(self._new_script(version, mode, preferences))
            return True

        head = self.soup.head
        if head is not None:
            head.insert(0, self._new_script(version, mode, preferences))
            return True

        return False

    def _new_script(self, version: str, mode: str, preferences: Optional[ScriptPreferences]) -> Tag:
        return self.soup.new_tag("script", src=build_script_url(version, mode, preferences))

    def _find_marker(self) -> Optional[Comment]:
        head = self.soup.head
        if head is None:
            return None
        for node in head.descendants:
            if isinstance(node, Comment) and node.strip() == MARKER_TEXT:
                return node
        return None


def inject_p5_script(html: str, version: str, mode: str = "cdn") -> str:
    mgr = HTMLManager(html)
    mgr.update_p5_script(version, mode)
    return mgr.serialize()
