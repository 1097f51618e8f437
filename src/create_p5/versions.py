"""p5.js version resolution and file downloads from jsDelivr.

Two versioning universes meet here: the ``p5`` package itself and the
TypeScript definitions. Before p5.js 2.0.2 definitions only exist in the
separately versioned ``@types/p5`` package, whose versions do not line up with
p5's, so a closest match has to be found. From 2.0.2 on, definitions ship in
``p5/types`` and are addressed by the exact p5 version.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Literal, Optional, Union

import httpx

from .errors import FetchError, InvalidVersionError, RegistryError
from .http_client import client_scope

logger = logging.getLogger(__name__)

PACKAGE_NAME = "p5"
TYPES_PACKAGE_NAME = "@types/p5"
REGISTRY_URL = "https://data.jsdelivr.com/v1/package/npm"
CDN_BASE = "https://cdn.jsdelivr.net/npm"

P5_FILES = ("p5.js", "p5.min.js")

_STABLE_RE = re.compile(r"^\d+\.\d+\.\d+$")
_SEMVER_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?$")
_PARTIAL_RE = re.compile(r"^(\d+)(?:\.(\d+))?$")


# --- Version catalog ---

@dataclass
class VersionCatalog:
    latest: str
    versions: list[str] = field(default_factory=list)


def is_stable_version(version: str) -> bool:
    """True for plain ``X.Y.Z``; any suffix or prefix marks a pre-release."""
    return bool(version) and bool(_STABLE_RE.match(version))


def filter_stable_versions(versions: Iterable[str]) -> list[str]:
    return [v for v in versions if is_stable_version(v)]


def fetch_versions(
    include_prerelease: bool = False,
    *,
    package: str = PACKAGE_NAME,
    client: httpx.Client | None = None,
) -> VersionCatalog:
    """Query the jsDelivr registry for ``package``.

    Versions come back newest-first. Pre-releases are dropped unless
    ``include_prerelease`` is set; the list is never truncated here.
    """
    url = f"{REGISTRY_URL}/{package}"
    logger.debug("Fetching versions from %s", url)
    with client_scope(client) as http:
        try:
            response = http.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise RegistryError(f"Failed to fetch versions for {package}: {e}") from e

    if response.status_code != 200:
        raise RegistryError(
            f"Registry returned HTTP {response.status_code} for {url}",
            status_code=response.status_code,
        )
    try:
        data = response.json()
        latest = data["tags"]["latest"]
        versions = list(data["versions"])
    except (ValueError, KeyError, TypeError) as e:
        raise RegistryError(f"Unexpected registry response for {package}: {e}") from e

    # the data API returns either plain strings or {"version": ...} objects
    versions = [v["version"] if isinstance(v, dict) else v for v in versions]

    if not include_prerelease:
        versions = filter_stable_versions(versions)
    return VersionCatalog(latest=latest, versions=versions)


def _latest_in(catalog: VersionCatalog) -> str:
    if is_stable_version(catalog.latest):
        return catalog.latest
    stable = filter_stable_versions(catalog.versions)
    if not stable:
        raise RegistryError(f"No stable {PACKAGE_NAME} versions published")
    return stable[0]


def latest_stable(*, client: httpx.Client | None = None) -> str:
    """Return the latest stable p5.js version."""
    return _latest_in(fetch_versions(include_prerelease=True, client=client))


def resolve_version(request: str, catalog: VersionCatalog) -> str:
    """Resolve ``latest``, a partial (``1`` or ``1.9``) or exact version.

    A partial version picks the newest stable release with that prefix. An
    exact version must be published. Raises InvalidVersionError for malformed
    requests and for versions the catalog does not contain.
    """
    request = (request or "").strip()
    if request == "latest":
        return _latest_in(catalog)

    match = _PARTIAL_RE.match(request)
    if match:
        prefix = tuple(int(part) for part in match.groups() if part is not None)
        stable = map(parse_version, filter_stable_versions(catalog.versions))
        matching = [v for v in stable if v.core[: len(prefix)] == prefix]
        if not matching:
            raise InvalidVersionError(f"No published {PACKAGE_NAME} version matches {request!r}")
        return str(max(matching, key=lambda v: v.core))

    parse_version(request)
    if request not in catalog.versions:
        raise InvalidVersionError(f"{PACKAGE_NAME} version {request!r} is not published")
    return request


def resolve_version_request(request: str, *, client: httpx.Client | None = None) -> str:
    """Fetch the catalog (pre-releases included) and resolve ``request`` against it."""
    catalog = fetch_versions(include_prerelease=True, client=client)
    resolved = resolve_version(request, catalog)
    logger.debug("Resolved version request %r to %s", request, resolved)
    return resolved


# --- Semantic versions ---

@dataclass(frozen=True)
class SemanticVersion:
    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None

    @property
    def core(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.prerelease}" if self.prerelease else base


def parse_version(version: str) -> SemanticVersion:
    """Parse strict ``major.minor.patch[-prerelease]``."""
    match = _SEMVER_RE.match(version or "")
    if not match:
        raise InvalidVersionError(f"Invalid semver version: {version!r}")
    major, minor, patch, prerelease = match.groups()
    return SemanticVersion(int(major), int(minor), int(patch), prerelease)


def _as_version(version: Union[str, SemanticVersion]) -> SemanticVersion:
    return version if isinstance(version, SemanticVersion) else parse_version(version)


# --- TypeScript definitions ---

@dataclass(frozen=True)
class LegacyTypesStrategy:
    """Definitions come from the independently versioned @types/p5 package."""

    reason: str
    kind: Literal["legacy"] = "legacy"

    @property
    def use_legacy_package(self) -> bool:
        return True


@dataclass(frozen=True)
class BundledTypesStrategy:
    """Definitions ship inside p5 itself, pinned to ``version``."""

    version: str
    reason: str
    kind: Literal["bundled"] = "bundled"

    @property
    def use_legacy_package(self) -> bool:
        return False


TypesStrategy = Union[LegacyTypesStrategy, BundledTypesStrategy]


def get_types_strategy(version: Union[str, SemanticVersion]) -> TypesStrategy:
    v = _as_version(version)
    if v.major <= 1:
        return LegacyTypesStrategy(reason=f"p5.js {v.major}.x uses @types/p5")
    if v.major == 2 and (v.minor, v.patch) < (0, 2):
        return LegacyTypesStrategy(
            reason=f"p5.js {v.major}.{v.minor}.{v.patch} predates bundled types; using @types/p5"
        )
    core = f"{v.major}.{v.minor}.{v.patch}"
    return BundledTypesStrategy(version=str(v), reason=f"p5.js {core} ships bundled types")


def resolve_types_version(
    version: Union[str, SemanticVersion],
    available_legacy_versions: Iterable[str],
) -> str:
    """Pick the @types/p5 version that best matches p5.js ``version``.

    Same ``major.minor`` wins (highest patch). Otherwise the same major with
    the nearest minor (ties go to the higher minor). With no same-major
    candidate, the nearest version in overall order is used: the greatest
    one below the target, else the smallest one above it.
    """
    target = _as_version(version)
    candidates = []
    for raw in available_legacy_versions:
        try:
            parsed = parse_version(raw)
        except InvalidVersionError:
            continue
        if parsed.prerelease is None:
            candidates.append(parsed)
    if not candidates:
        raise RegistryError(f"No {TYPES_PACKAGE_NAME} versions available")

    exact = [c for c in candidates if (c.major, c.minor) == (target.major, target.minor)]
    if exact:
        return str(max(exact, key=lambda c: c.patch))

    same_major = [c for c in candidates if c.major == target.major]
    if same_major:
        best_minor = min(
            {c.minor for c in same_major},
            key=lambda minor: (abs(minor - target.minor), -minor),
        )
        return str(max((c for c in same_major if c.minor == best_minor), key=lambda c: c.patch))

    below = [c for c in candidates if c.core < target.core]
    if below:
        chosen = max(below, key=lambda c: c.core)
    else:
        chosen = min(candidates, key=lambda c: c.core)
    logger.debug("No %s.x types for %s; using nearest %s", target.major, target, chosen)
    return str(chosen)


def _types_files(strategy: TypesStrategy, p5_mode: str) -> list[str]:
    primary = "index.d.ts" if isinstance(strategy, LegacyTypesStrategy) else "p5.d.ts"
    return [primary] if p5_mode == "instance" else [primary, "global.d.ts"]


def _types_base_url(strategy: TypesStrategy, types_version: str) -> str:
    if isinstance(strategy, LegacyTypesStrategy):
        return f"{CDN_BASE}/{TYPES_PACKAGE_NAME}@{types_version}"
    return f"{CDN_BASE}/{PACKAGE_NAME}@{types_version}/types"


def _download_text(http: httpx.Client, url: str, error_prefix: str) -> str:
    try:
        response = http.get(url, follow_redirects=True)
    except httpx.HTTPError as e:
        raise FetchError(f"{error_prefix}: {e}") from e
    if not 200 <= response.status_code < 300:
        raise FetchError(
            f"Failed to download {url}: HTTP {response.status_code}",
            status_code=response.status_code,
        )
    return response.text


def download_type_definitions(
    version: str,
    target_dir: Path,
    *,
    p5_mode: str = "global",
    legacy_versions: Optional[Iterable[str]] = None,
    client: httpx.Client | None = None,
) -> str:
    """Download .d.ts files for p5.js ``version`` into ``target_dir``.

    ``instance`` mode needs only the primary definitions file; ``global``
    mode also needs ``global.d.ts``. Returns the version of the definitions
    actually used, which differs from ``version`` when @types/p5 applies.
    """
    strategy = get_types_strategy(version)
    logger.debug("Types strategy for %s: %s", version, strategy.reason)
    target_dir = Path(target_dir)

    with client_scope(client) as http:
        if isinstance(strategy, LegacyTypesStrategy):
            if legacy_versions is None:
                legacy_versions = fetch_versions(package=TYPES_PACKAGE_NAME, client=http).versions
            types_version = resolve_types_version(version, legacy_versions)
        else:
            types_version = strategy.version

        base_url = _types_base_url(strategy, types_version)
        contents = {}
        for name in _types_files(strategy, p5_mode):
            contents[name] = _download_text(
                http, f"{base_url}/{name}", "Unable to download TypeScript definitions"
            )

    target_dir.mkdir(parents=True, exist_ok=True)
    for name, text in contents.items():
        (target_dir / name).write_text(text, encoding="utf-8")
    return types_version


def download_p5_files(version: str, target_dir: Path, *, client: httpx.Client | None = None) -> list[Path]:
    """Download p5.js and p5.min.js for local delivery mode."""
    target_dir = Path(target_dir)
    written = []
    with client_scope(client) as http:
        for name in P5_FILES:
            url = f"{CDN_BASE}/{PACKAGE_NAME}@{version}/lib/{name}"
            text = _download_text(http, url, f"Unable to download {name}")
            target_dir.mkdir(parents=True, exist_ok=True)
            dest = target_dir / name
            dest.write_text(text, encoding="utf-8")
            written.append(dest)
    return written


def dump_catalog(catalog: VersionCatalog) -> str:
    return json.dumps({"latest": catalog.latest, "versions": catalog.versions}, indent=2)
