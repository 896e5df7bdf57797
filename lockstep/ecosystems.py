"""Per-ecosystem manifest plugins.

Each plugin is a set of pure text transforms over one manifest format: read
the declared version, read the declared dependencies, rewrite the version,
rewrite one dependency's constraint. The graph and bump engines never look at
manifest syntax themselves; they go through ``plugin_for(repo.ecosystem)``.
"""

from __future__ import annotations

import json
import re
from pathlib import Path

import tomlkit
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from .errors import ManifestError
from .models import Dependency, Ecosystem
from .toml import dependency_lists, get_all_dependency_strings, parse_toml
from .versions import Version, VersionReq

# Leading "name[extras]" of a PEP 508 string; what follows is the specifier.
_REQ_HEAD_RE = re.compile(r"^\s*[A-Za-z0-9][A-Za-z0-9._-]*\s*(\[[^\]]*\])?\s*")


class EcosystemPlugin:
    """No-op plugin used for ecosystems lockstep cannot read.

    Subclasses override the transforms for their manifest format.

    Attributes:
        file_patterns: Manifest file names looked for in a repo, in order.
        default_operator: Operator used when a constraint being rewritten
                          has none (a bare version or no constraint). None
                          means such constraints are left alone.
    """

    name = "custom"
    file_patterns: tuple[str, ...] = ()
    default_operator: str | None = None

    def parse_version(self, path: Path, content: str) -> Version | None:
        return None

    def parse_dependencies(self, path: Path, content: str) -> list[Dependency]:
        return []

    def update_version(self, path: Path, content: str, new_version: Version) -> str:
        return content

    def update_dependency(
        self, path: Path, content: str, dep_name: str, constraint: str
    ) -> str:
        return content

    def handles(self, path: Path) -> bool:
        return path.name in self.file_patterns

    def find_manifest(self, repo_path: Path) -> Path | None:
        """Return the first existing manifest in ``repo_path``."""
        for pattern in self.file_patterns:
            candidate = repo_path / pattern
            if candidate.is_file():
                return candidate
        return None


class PythonPlugin(EcosystemPlugin):
    """pyproject.toml: [project] version and PEP 508 dependency strings."""

    name = "python"
    file_patterns = ("pyproject.toml",)
    default_operator = "=="

    def parse_version(self, path: Path, content: str) -> Version | None:
        if not self.handles(path):
            return None
        doc = parse_toml(path, content)
        version = doc.get("project", {}).get("version")
        return Version(raw=str(version)) if version is not None else None

    def parse_dependencies(self, path: Path, content: str) -> list[Dependency]:
        if not self.handles(path):
            return []
        doc = parse_toml(path, content)
        deps = []
        for dep_str in get_all_dependency_strings(doc):
            req = _parse_requirement(path, dep_str)
            deps.append(
                Dependency(
                    name=req.name,
                    constraint=VersionReq(raw=split_specifier(dep_str)),
                )
            )
        return deps

    def update_version(self, path: Path, content: str, new_version: Version) -> str:
        if not self.handles(path):
            return content
        doc = parse_toml(path, content)
        project = doc.get("project")
        if project is None:
            raise ManifestError(path, "no [project] table to set the version in")
        project["version"] = new_version.raw
        return tomlkit.dumps(doc)

    def update_dependency(
        self, path: Path, content: str, dep_name: str, constraint: str
    ) -> str:
        if not self.handles(path):
            return content
        doc = parse_toml(path, content)
        wanted = canonicalize_name(dep_name)
        for deps in dependency_lists(doc):
            for i, dep_str in enumerate(deps):
                if not isinstance(dep_str, str):
                    continue
                req = _parse_requirement(path, str(dep_str))
                if canonicalize_name(req.name) == wanted:
                    deps[i] = rewrite_requirement(req, constraint)
        return tomlkit.dumps(doc)


class RustPlugin(EcosystemPlugin):
    """Cargo.toml: [package] version and the three dependency tables."""

    name = "rust"
    file_patterns = ("Cargo.toml",)
    default_operator = ""
    sections = ("dependencies", "dev-dependencies", "build-dependencies")

    def parse_version(self, path: Path, content: str) -> Version | None:
        if not self.handles(path):
            return None
        doc = parse_toml(path, content)
        version = doc.get("package", {}).get("version")
        # `version.workspace = true` is an inline table, not a version.
        if isinstance(version, str):
            return Version(raw=str(version))
        return None

    def parse_dependencies(self, path: Path, content: str) -> list[Dependency]:
        if not self.handles(path):
            return []
        doc = parse_toml(path, content)
        deps = []
        for section in self.sections:
            for name, value in doc.get(section, {}).items():
                if isinstance(value, str):
                    raw = str(value)
                elif isinstance(value, dict):
                    raw = str(value.get("version", ""))
                else:
                    raw = ""
                deps.append(Dependency(name=str(name), constraint=VersionReq(raw=raw)))
        return deps

    def update_version(self, path: Path, content: str, new_version: Version) -> str:
        if not self.handles(path):
            return content
        doc = parse_toml(path, content)
        package = doc.get("package")
        if package is None:
            raise ManifestError(path, "no [package] table to set the version in")
        package["version"] = new_version.raw
        return tomlkit.dumps(doc)

    def update_dependency(
        self, path: Path, content: str, dep_name: str, constraint: str
    ) -> str:
        if not self.handles(path):
            return content
        doc = parse_toml(path, content)
        for section in self.sections:
            table = doc.get(section)
            if not isinstance(table, dict) or dep_name not in table:
                continue
            if isinstance(table[dep_name], dict):
                table[dep_name]["version"] = constraint
            else:
                table[dep_name] = constraint
        return tomlkit.dumps(doc)


class NodePlugin(EcosystemPlugin):
    """package.json: top-level version and the four dependency maps."""

    name = "node"
    file_patterns = ("package.json",)
    default_operator = ""
    sections = (
        "dependencies",
        "devDependencies",
        "peerDependencies",
        "optionalDependencies",
    )

    def parse_version(self, path: Path, content: str) -> Version | None:
        if not self.handles(path):
            return None
        version = load_json(path, content).get("version")
        return Version(raw=version) if isinstance(version, str) else None

    def parse_dependencies(self, path: Path, content: str) -> list[Dependency]:
        if not self.handles(path):
            return []
        data = load_json(path, content)
        deps = []
        for section in self.sections:
            for name, value in data.get(section, {}).items():
                if isinstance(value, str):
                    deps.append(Dependency(name=name, constraint=VersionReq(raw=value)))
        return deps

    def update_version(self, path: Path, content: str, new_version: Version) -> str:
        if not self.handles(path):
            return content
        data = load_json(path, content)
        data["version"] = new_version.raw
        return dump_json(data)

    def update_dependency(
        self, path: Path, content: str, dep_name: str, constraint: str
    ) -> str:
        if not self.handles(path):
            return content
        data = load_json(path, content)
        for section in self.sections:
            deps = data.get(section)
            if isinstance(deps, dict) and dep_name in deps:
                deps[dep_name] = constraint
        return dump_json(data)


class GoPlugin(EcosystemPlugin):
    """go.mod: require directives. Go modules declare no version of their own."""

    name = "go"
    file_patterns = ("go.mod",)
    default_operator = "v"

    def parse_dependencies(self, path: Path, content: str) -> list[Dependency]:
        if not self.handles(path):
            return []
        deps = []
        for _, name, version in _iter_requires(content.splitlines()):
            deps.append(Dependency(name=name, constraint=VersionReq(raw=version)))
        return deps

    def update_dependency(
        self, path: Path, content: str, dep_name: str, constraint: str
    ) -> str:
        if not self.handles(path):
            return content
        lines = content.splitlines(keepends=True)
        for index, name, version in _iter_requires(lines):
            if name == dep_name:
                line = lines[index]
                start = line.index(version, line.index(name) + len(name))
                lines[index] = line[:start] + constraint + line[start + len(version) :]
        return "".join(lines)


_PLUGINS: dict[Ecosystem, EcosystemPlugin] = {
    Ecosystem.PYTHON: PythonPlugin(),
    Ecosystem.RUST: RustPlugin(),
    Ecosystem.NODE: NodePlugin(),
    Ecosystem.GO: GoPlugin(),
    Ecosystem.JAVA: EcosystemPlugin(),
    Ecosystem.CUSTOM: EcosystemPlugin(),
}


def plugin_for(ecosystem: Ecosystem | None) -> EcosystemPlugin:
    """Return the plugin for an ecosystem tag (the no-op plugin for None)."""
    if ecosystem is None:
        return _PLUGINS[Ecosystem.CUSTOM]
    return _PLUGINS[ecosystem]


def detect_ecosystem(repo_path: Path) -> Ecosystem | None:
    """Guess a repo's ecosystem from the manifests present in it."""
    for ecosystem, plugin in _PLUGINS.items():
        if plugin.find_manifest(repo_path) is not None:
            return ecosystem
    return None


def split_specifier(dep_str: str) -> str:
    """Extract the version specifier text of a PEP 508 string, as written.

    Examples:
        "requests>=2.0,<3" → ">=2.0,<3"
        "pkg[extra] ~= 1.0 ; python_version < '3.12'" → "~= 1.0"
        "pkg" → ""
    """
    spec = dep_str.split(";", 1)[0]
    spec = _REQ_HEAD_RE.sub("", spec, count=1)
    return spec.strip().strip("()").strip()


def rewrite_requirement(req: Requirement, constraint: str) -> str:
    """Render a requirement with a new specifier.

    Preserves the extras (sorted for consistent output) and any environment
    marker of the existing requirement.

    Examples:
        rewrite_requirement(Requirement("pkg[b,a]>=1.0"), "==1.5.0") → "pkg[a,b]==1.5.0"
    """
    extras = f"[{','.join(sorted(req.extras))}]" if req.extras else ""
    marker = f"; {req.marker}" if req.marker else ""
    return f"{req.name}{extras}{constraint}{marker}"


def _parse_requirement(path: Path, dep_str: str) -> Requirement:
    try:
        return Requirement(dep_str)
    except InvalidRequirement as exc:
        raise ManifestError(path, f"invalid requirement '{dep_str}': {exc}") from exc


def load_json(path: Path, content: str) -> dict:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ManifestError(path, f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(path, "expected a JSON object")
    return data


def dump_json(data: dict) -> str:
    """Serialize a manifest the way npm writes it, non-ASCII text kept as is."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def _iter_requires(lines: list[str]):
    """Yield (line index, module, version) for each require in go.mod lines."""
    in_block = False
    for index, line in enumerate(lines):
        text = line.split("//", 1)[0].strip()
        if not text:
            continue
        if in_block:
            if text.startswith(")"):
                in_block = False
                continue
            entry = text
        elif text.startswith("require"):
            rest = text[len("require") :].strip()
            if rest.startswith("("):
                in_block = True
                continue
            entry = rest
        else:
            continue
        parts = entry.split()
        if len(parts) >= 2:
            yield index, parts[0], parts[1]
