"""Reference graph over the files of a change set.

Nodes are changed files, identified by their index in the change set (the
first-appearance order), so every traversal below works on plain ints and
sets. An edge a -> b means a's changed lines mention a symbol or module
that b defines. Mutual references are normal; the graph may be cyclic.

Symbol extraction is regex-based and deliberately language-agnostic: it
recognises the common definition and import forms across the languages in
``utils.code.LANGUAGES``. A reference that resolves to nothing is dropped —
graph building is best-effort, and a missing edge only means two files may
be reviewed in different chunks.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

from prweave_core.errors import GraphBuildError
from prweave_core.models import ChangedFile
from prweave_core.utils.code import detect_language
from prweave_core.utils.diff import MalformedPatch, changed_lines, new_side_lines

logger = logging.getLogger(__name__)

_DEFINITION_PATTERNS = [
    re.compile(r"^\s*(?:async\s+)?def\s+([A-Za-z_]\w*)"),
    re.compile(
        r"^\s*(?:export\s+)?(?:default\s+)?(?:(?:public|private|protected|internal|static|final|abstract|"
        r"sealed|open|data|partial)\s+)*(?:class|interface|enum|record|object|struct|trait|protocol)\s+([A-Za-z_]\w*)"
    ),
    re.compile(r"^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?function\*?\s+([A-Za-z_$][\w$]*)"),
    re.compile(r"^\s*(?:export\s+)?(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*[:=]"),
    re.compile(r"^\s*(?:export\s+)?(?:type|typealias)\s+([A-Za-z_]\w*)"),
    re.compile(r"^\s*func\s+(?:\([^)]*\)\s*)?([A-Za-z_]\w*)"),
    re.compile(r"^\s*(?:pub(?:\([^)]*\))?\s+)?(?:fn|mod|const|static)\s+([A-Za-z_]\w*)"),
    re.compile(r"^\s*(?:module|namespace|package)\s+([A-Za-z_][\w.]*)"),
    re.compile(r"^([A-Za-z_]\w*)\s*(?::[^=]+)?=(?!=)"),  # module-level assignment
]

_PY_FROM_IMPORT = re.compile(r"^\s*from\s+(\.*[\w.]*)\s+import\s+\(?([\w\s,*]+)")
_PY_IMPORT = re.compile(r"^\s*import\s+([\w.]+(?:\s*,\s*[\w.]+)*)")
_QUOTED_IMPORT = re.compile(r"""(?:from|import|require\(|include|load)\s*['"<]([^'">]+)['">]""")
_PATH_IMPORT = re.compile(r"""^\s*(?:use|import)\s+([\w:.]+)""")
_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# Names too generic to link two files on their own.
_COMMON_NAMES = frozenset(
    {
        "main",
        "init",
        "self",
        "this",
        "test",
        "tests",
        "setup",
        "run",
        "get",
        "set",
        "new",
        "index",
        "default",
        "value",
        "data",
        "name",
        "type",
        "utils",
        "config",
        "const",
        "return",
        "import",
        "export",
        "from",
        "true",
        "false",
        "none",
        "null",
    }
)

_INDEX_STEMS = {"__init__", "index", "mod", "lib"}


def _meaningful(name: str) -> bool:
    return len(name) >= 3 and name.lower() not in _COMMON_NAMES and not (name.startswith("__") and name.endswith("__"))


@dataclass
class DependencyGraph:
    """Directed reference graph keyed by node id (= position in the change set)."""

    nodes: list[str]
    edges: dict[int, set[int]] = field(default_factory=dict)

    def __post_init__(self):
        for node_id in range(len(self.nodes)):
            self.edges.setdefault(node_id, set())

    def add_edge(self, source: int, target: int) -> None:
        if source != target:
            self.edges[source].add(target)

    def node_id(self, path: str) -> int:
        return self.nodes.index(path)

    def references(self, path: str) -> list[str]:
        """Paths referenced by ``path``, in first-appearance order."""
        return [self.nodes[t] for t in sorted(self.edges[self.node_id(path)])]

    def neighbours(self) -> dict[int, set[int]]:
        """Undirected view: a references b or b references a."""
        undirected: dict[int, set[int]] = {n: set(targets) for n, targets in self.edges.items()}
        for source, targets in self.edges.items():
            for target in targets:
                undirected[target].add(source)
        return undirected

    def components(self) -> list[list[int]]:
        """Weakly connected components, each sorted, ordered by their smallest node id."""
        adjacency = self.neighbours()
        seen: set[int] = set()
        components: list[list[int]] = []
        for start in range(len(self.nodes)):
            if start in seen:
                continue
            seen.add(start)
            stack = [start]
            members = []
            while stack:
                node = stack.pop()
                members.append(node)
                for other in adjacency[node]:
                    if other not in seen:
                        seen.add(other)
                        stack.append(other)
            components.append(sorted(members))
        return components


def module_aliases(path: str) -> set[str]:
    """Names another file could use to import ``path``.

    ``src/app/util/strings.py`` yields ``strings``, ``app.util.strings``,
    ``util.strings``, ``src/app/util/strings`` and friends; package index
    files (``__init__.py``, ``index.ts``, ``mod.rs``) also answer to their
    directory name.
    """
    stem_path = path.rsplit(".", 1)[0] if "." in path.rsplit("/", 1)[-1] else path
    parts = [p for p in stem_path.split("/") if p]
    if parts and parts[-1] in _INDEX_STEMS and len(parts) > 1:
        parts = parts[:-1]
    aliases: set[str] = set()
    for i in range(len(parts)):
        suffix = parts[i:]
        aliases.add(".".join(suffix))
        aliases.add("/".join(suffix))
        aliases.add("::".join(suffix))
    return {a for a in aliases if _meaningful(a.rsplit(".", 1)[-1].rsplit("/", 1)[-1].rsplit("::", 1)[-1])}


def defined_symbols(file: ChangedFile) -> set[str]:
    source = file.content.splitlines() if file.content else new_side_lines(file.patch)
    symbols: set[str] = set()
    for line in source:
        for pattern in _DEFINITION_PATTERNS:
            match = pattern.match(line)
            if match:
                name = match.group(1)
                if _meaningful(name):
                    symbols.add(name)
    return symbols


def _normalise_import(target: str) -> set[str]:
    """Turn an import string into the alias forms used by module_aliases()."""
    target = target.strip()
    if not target:
        return set()
    forms = {target}
    if "/" in target:
        cleaned = re.sub(r"^(?:\.\.?/)+", "", target)
        cleaned = re.sub(r"\.(?:js|jsx|ts|tsx|mjs|cjs|h|hpp|rb|php)$", "", cleaned)
        cleaned = re.sub(r"/(?:index)$", "", cleaned)
        forms.add(cleaned)
        forms.add(cleaned.rsplit("/", 1)[-1])
    if "::" in target:
        segments = [s for s in target.split("::") if s not in ("crate", "self", "super", "*")]
        forms.add("::".join(segments))
        forms.update(segments)
    if "." in target and "/" not in target:
        dotted = target.lstrip(".")
        forms.add(dotted)
        segments = dotted.split(".")
        forms.add(segments[-1])
        # "pkg.module.Name": the module part is also a candidate
        if len(segments) > 1:
            forms.add(".".join(segments[:-1]))
    return {f for f in forms if f}


def referenced_names(file: ChangedFile) -> tuple[set[str], set[str]]:
    """Return (import targets, identifiers) found in the file's changed lines.

    Raises GraphBuildError when the patch cannot be parsed.
    """
    try:
        added, removed = changed_lines(file.patch)
    except MalformedPatch as e:
        raise GraphBuildError(f"{file.path}: {e}") from e

    imports: set[str] = set()
    identifiers: set[str] = set()
    for line in added + removed:
        match = _PY_FROM_IMPORT.match(line)
        if match:
            module, names = match.groups()
            imports |= _normalise_import(module)
            # "name as alias" -> name
            imports |= {n.split()[0] for n in names.split(",") if n.strip() and n.strip() != "*"}
        match = _PY_IMPORT.match(line)
        if match:
            for module in match.group(1).split(","):
                imports |= _normalise_import(module.strip())
        for quoted in _QUOTED_IMPORT.findall(line):
            imports |= _normalise_import(quoted)
        match = _PATH_IMPORT.match(line)
        if match:
            imports |= _normalise_import(match.group(1).rstrip(";"))
        identifiers.update(_IDENTIFIER.findall(line))
    return imports, identifiers


def _index(entries: Iterable[tuple[int, set[str]]]) -> dict[str, set[int]]:
    index: dict[str, set[int]] = {}
    for node_id, names in entries:
        for name in names:
            index.setdefault(name, set()).add(node_id)
    return index


def build_graph(files: list[ChangedFile] | tuple[ChangedFile, ...]) -> DependencyGraph:
    """Build the reference graph for a change set.

    Raises GraphBuildError when nothing in the change set is in a supported
    language or when a patch cannot be parsed. The caller treats that as a
    signal to fall back to per-file chunking.
    """
    graph = DependencyGraph(nodes=[f.path for f in files])
    if not files:
        return graph

    if not any(detect_language(f.path) for f in files):
        raise GraphBuildError("No file in the change set is in a supported language.")

    symbol_index = _index((i, defined_symbols(f)) for i, f in enumerate(files) if detect_language(f.path))
    module_index = _index((i, module_aliases(f.path)) for i, f in enumerate(files))

    for source, file in enumerate(files):
        if not detect_language(file.path):
            continue
        imports, identifiers = referenced_names(file)
        for target_name in imports:
            for target in module_index.get(target_name, ()):
                graph.add_edge(source, target)
            for target in symbol_index.get(target_name, ()):
                graph.add_edge(source, target)
        for identifier in identifiers:
            for target in symbol_index.get(identifier, ()):
                graph.add_edge(source, target)

    edge_count = sum(len(t) for t in graph.edges.values())
    logger.debug("Built reference graph: %d node(s), %d edge(s)", len(graph.nodes), edge_count)
    return graph
