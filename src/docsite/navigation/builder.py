"""Navigation tree construction from a declared nav config and the loaded documents."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Sequence, Set, Tuple, Union

from docsite.errors import (
    DUPLICATE_NAV_ENTRY,
    ERROR,
    MISSING_NAV_TARGET,
    REFERENCE,
    STRUCTURAL,
    WARNING,
    ConfigError,
    StructuralError,
)
from docsite.linking.resolver import candidate_paths, lookup, normalize_target
from docsite.models import Diagnostic, DocumentSet, NavigationNode, NavigationTree, ResolvedTarget
from docsite.utils.text import humanize_stem

LOGGER = logging.getLogger(__name__)

ROOT_DOCUMENT = "index"
_LEAF_KEYS = {"label", "path", "draft"}
_SECTION_KEYS = {"label", "children"}


@dataclass(slots=True, frozen=True)
class NavLeaf:
    path: str
    label: str | None = None
    draft: bool = False


@dataclass(slots=True, frozen=True)
class NavSection:
    label: str
    children: Tuple["NavEntry", ...] = ()


NavEntry = Union[NavLeaf, NavSection]


class NavState(str, enum.Enum):
    BUILDING = "building"
    VALIDATED = "validated"
    FROZEN = "frozen"


def _leaf(path: Any, label: str | None, draft: Any, where: str) -> NavLeaf:
    if not isinstance(path, str) or not path.strip():
        raise ConfigError(f"{where}: navigation path must be a non-empty string")
    if "#" in path:
        raise ConfigError(f"{where}: anchors are not allowed in navigation ({path!r})")
    if "://" in path or path.startswith(("mailto:", "//")):
        raise ConfigError(f"{where}: navigation entries must point to documents ({path!r})")
    if not isinstance(draft, bool):
        raise ConfigError(f"{where}: 'draft' must be true or false")
    return NavLeaf(path=path.strip(), label=label, draft=draft)


def _parse_entry(raw: Any, where: str, active: Set[int]) -> NavEntry:
    if isinstance(raw, str):
        return _leaf(raw, None, False, where)
    if not isinstance(raw, dict) or not raw:
        raise ConfigError(f"{where}: expected a path or a mapping, got {type(raw).__name__}")

    keys = set(raw)
    if "path" in keys and keys <= _LEAF_KEYS:
        label = raw.get("label")
        return _leaf(raw["path"], None if label is None else str(label), raw.get("draft", False), where)
    if "children" in keys and keys <= _SECTION_KEYS:
        if "label" not in raw:
            raise ConfigError(f"{where}: section needs a 'label'")
        return NavSection(str(raw["label"]), _parse_list(raw["children"], where, active))

    if len(raw) != 1:
        raise ConfigError(f"{where}: cannot interpret navigation entry with keys {sorted(keys)}")
    label, value = next(iter(raw.items()))
    label = str(label)
    if isinstance(value, str):
        return _leaf(value, label, False, f"{where}/{label}")
    if isinstance(value, list):
        return NavSection(label, _parse_list(value, f"{where}/{label}", active))
    if isinstance(value, dict) and set(value) <= {"path", "draft"} and "path" in value:
        return _leaf(value["path"], label, value.get("draft", False), f"{where}/{label}")
    raise ConfigError(f"{where}/{label}: unsupported navigation value {type(value).__name__}")


def _parse_list(raw: Any, where: str, active: Set[int]) -> Tuple[NavEntry, ...]:
    if not isinstance(raw, list):
        raise ConfigError(f"{where}: expected a list of navigation entries")
    if id(raw) in active:
        raise StructuralError(f"{where}: navigation contains a cycle", paths=(where,))
    active.add(id(raw))
    try:
        return tuple(_parse_entry(item, f"{where}[{index}]", active) for index, item in enumerate(raw))
    finally:
        active.discard(id(raw))


def parse_nav(raw: Any) -> Tuple[NavEntry, ...]:
    """Parse a mkdocs-style nav list into ``NavLeaf``/``NavSection`` entries.

    Raises ``ConfigError`` for malformed entries and ``StructuralError`` when a
    YAML alias makes a section contain itself.
    """
    if raw is None:
        return ()
    return _parse_list(raw, "nav", set())


def iter_leaves(entries: Iterable[NavEntry]) -> Iterator[NavLeaf]:
    for entry in entries:
        if isinstance(entry, NavLeaf):
            yield entry
        else:
            yield from iter_leaves(entry.children)


def declared_paths(entries: Iterable[NavEntry]) -> Set[str]:
    """Canonical path candidates named by the nav config."""
    paths: Set[str] = {ROOT_DOCUMENT}
    for leaf in iter_leaves(entries):
        normalized = normalize_target("", leaf.path)
        if normalized is not None:
            paths.update(candidate_paths(normalized))
    return paths


class NavigationBuilder:
    """Builds, validates and freezes the navigation tree for one build pass."""

    def __init__(
        self,
        entries: Sequence[NavEntry] | None,
        documents: DocumentSet,
        *,
        strict: bool = False,
        auto_discover: bool = False,
        catch_all_label: str = "Other",
        site_title: str = "Home",
    ) -> None:
        self.entries = entries
        self.documents = documents
        self.strict = strict
        self.auto_discover = auto_discover or entries is None
        self.catch_all_label = catch_all_label
        self.site_title = site_title
        self.state = NavState.BUILDING
        self.diagnostics: List[Diagnostic] = []
        self._referenced: Set[str] = set()
        self._declared: Set[str] = set()
        self._root: NavigationNode | None = None
        self._children: List[NavigationNode] = []
        self._tree: NavigationTree | None = None

    def build(self) -> "NavigationBuilder":
        if self.state is not NavState.BUILDING:
            raise RuntimeError(f"Navigation already {self.state.value}")

        root_target = self.documents.lookup(ROOT_DOCUMENT)
        if root_target is not None:
            self._referenced.add(root_target)

        for entry in self.entries or ():
            node = self._build_entry(entry)
            if node is not None:
                self._children.append(node)

        if self.auto_discover:
            remaining = [path for path in self.documents if path not in self._referenced]
            discovered = self._discover(remaining)
            if self.entries is None:
                self._children.extend(discovered)
            elif discovered:
                self._children.append(
                    NavigationNode(label=self.catch_all_label, children=tuple(discovered))
                )

        self._root = NavigationNode(
            label=self.site_title,
            target=ResolvedTarget(root_target) if root_target else None,
            children=tuple(self._children),
        )
        self.state = NavState.VALIDATED
        LOGGER.debug("Navigation validated with %d top-level entries", len(self._children))
        return self

    def freeze(self) -> NavigationTree:
        if self.state is NavState.BUILDING:
            self.build()
        if self._tree is None:
            assert self._root is not None
            self._tree = NavigationTree(self._root)
            self.state = NavState.FROZEN
        return self._tree

    def _build_entry(self, entry: NavEntry) -> NavigationNode | None:
        if isinstance(entry, NavSection):
            children = tuple(
                node for node in (self._build_entry(child) for child in entry.children) if node
            )
            return NavigationNode(label=entry.label, children=children)
        return self._build_leaf(entry)

    def _build_leaf(self, leaf: NavLeaf) -> NavigationNode | None:
        normalized = normalize_target("", leaf.path)
        found = lookup(self.documents, normalized)[0] if normalized is not None else None
        if found is None:
            severity = ERROR if (self.strict or not leaf.draft) else WARNING
            self.diagnostics.append(
                Diagnostic(
                    kind=MISSING_NAV_TARGET,
                    category=STRUCTURAL,
                    severity=severity,
                    path=leaf.path,
                    message=f"Navigation entry {leaf.label or leaf.path!r} points to missing document {leaf.path!r}",
                )
            )
            return None

        if found in self._declared:
            self.diagnostics.append(
                Diagnostic(
                    kind=DUPLICATE_NAV_ENTRY,
                    category=REFERENCE,
                    severity=WARNING,
                    path=found,
                    message=f"{found!r} appears more than once in the navigation",
                )
            )
        self._declared.add(found)
        self._referenced.add(found)
        label = leaf.label or self.documents[found].title
        return NavigationNode(label=label, target=ResolvedTarget(found), draft=leaf.draft)

    def _discover(self, paths: Iterable[str]) -> List[NavigationNode]:
        """Group unreferenced documents by directory, depth first."""
        directories: Dict[str, List[str]] = {}
        for path in sorted(paths):
            parent, _, _ = path.rpartition("/")
            directories.setdefault(parent, []).append(path)
            while parent:
                grandparent, _, _ = parent.rpartition("/")
                directories.setdefault(grandparent, [])
                parent = grandparent
        return self._discover_directory("", directories, set())

    def _discover_directory(
        self, directory: str, directories: Dict[str, List[str]], visited: Set[str]
    ) -> List[NavigationNode]:
        if directory in visited:
            return []
        visited.add(directory)

        nodes: List[NavigationNode] = []
        for path in directories.get(directory, []):
            self._referenced.add(path)
            nodes.append(NavigationNode(label=self.documents[path].title, target=ResolvedTarget(path)))

        prefix = f"{directory}/" if directory else ""
        subdirectories = sorted(
            name for name in directories if name.startswith(prefix) and name != directory and "/" not in name[len(prefix) :]
        )
        for subdirectory in subdirectories:
            children = self._discover_directory(subdirectory, directories, visited)
            if not children:
                continue
            index_target = next(
                (child for child in children if child.target and child.target.path == f"{subdirectory}/index"),
                None,
            )
            if index_target is not None:
                children = [child for child in children if child is not index_target]
            nodes.append(
                NavigationNode(
                    label=humanize_stem(subdirectory.rsplit("/", 1)[-1]),
                    target=index_target.target if index_target else None,
                    children=tuple(children),
                )
            )
        return nodes


def build(
    entries: Sequence[NavEntry] | None,
    documents: DocumentSet,
    *,
    strict: bool = False,
    auto_discover: bool = False,
    catch_all_label: str = "Other",
    site_title: str = "Home",
) -> Tuple[NavigationTree, List[Diagnostic]]:
    """Build and freeze the navigation tree, returning it with its diagnostics."""
    builder = NavigationBuilder(
        entries,
        documents,
        strict=strict,
        auto_discover=auto_discover,
        catch_all_label=catch_all_label,
        site_title=site_title,
    )
    tree = builder.freeze()
    LOGGER.info("Built navigation with %d linked documents", len(tree.targets()))
    return tree, builder.diagnostics
