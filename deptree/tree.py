from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from deptree.constants import MODULES_DIR_NAME
from deptree.errors import ResolutionConflict


@dataclass
class TreeNode:
    """A package placed in a tree, or the project root itself.

    Ownership is stored as indices into the owning PackageTree: `parent` is a
    back-reference used for lookups only, `children` are the nodes physically
    nested under this one. `requires` maps a dependency name to the index of
    whichever node satisfies it, which may live under an ancestor (hoisting).
    """

    index: int
    name: str
    version: str
    parent: int | None = None
    children: list[int] = field(default_factory=list)
    dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)
    optional_dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)
    scripts: dict[str, str] = field(default_factory=dict)
    requires: dict[str, int] = field(default_factory=dict)
    missing: set[str] = field(default_factory=set)
    extraneous: bool = False
    dev: bool = False
    optional: bool = False
    requested: bool = False

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def declared(self, include_dev: bool = False) -> dict[str, str]:
        """Dependency specs this node asks for, in install order."""
        specs = dict(self.dependencies)
        specs.update(self.optional_dependencies)
        if include_dev:
            specs.update(self.dev_dependencies)
        return specs

    def __str__(self) -> str:
        return f'{self.name}@{self.version}'


def same_package(a: TreeNode | None, b: TreeNode | None) -> bool:
    """Structural equality used when diffing two trees."""
    if a is None or b is None:
        return False
    return a.name == b.name and a.version == b.version


class PackageTree:
    """Arena of TreeNodes rooted at a project directory."""

    def __init__(self, root_dir: Path, name: str, version: str = '0.0.0'):
        self.root_dir = Path(root_dir)
        self.nodes: dict[int, TreeNode] = {}
        self._locations: dict[tuple[str, ...], int] = {}
        self._next_index = 0
        self.root_index = self._create(name, version, None).index

    @property
    def root(self) -> TreeNode:
        return self.nodes[self.root_index]

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, index: int) -> bool:
        return index in self.nodes

    def __getitem__(self, index: int) -> TreeNode:
        return self.nodes[index]

    def _create(self, name: str, version: str, parent: int | None, **attrs) -> TreeNode:
        node = TreeNode(index=self._next_index, name=name, version=version, parent=parent, **attrs)
        self._next_index += 1
        self.nodes[node.index] = node
        return node

    def add_node(self, name: str, version: str, parent: int, **attrs) -> TreeNode:
        """Create a node owned by `parent`. Sibling names must be unique."""
        if self.child_named(parent, name) is not None:
            raise ValueError(f'{self.location(parent) or "<root>"} already owns {name}')
        node = self._create(name, version, parent, **attrs)
        self.nodes[parent].children.append(node.index)
        self._locations[self.location(node.index)] = node.index
        return node

    def children(self, index: int) -> list[TreeNode]:
        return [self.nodes[i] for i in self.nodes[index].children]

    def child_named(self, index: int, name: str) -> TreeNode | None:
        for i in self.nodes[index].children:
            if self.nodes[i].name == name:
                return self.nodes[i]
        return None

    def top_level(self) -> list[TreeNode]:
        return self.children(self.root_index)

    def ancestors(self, index: int) -> Iterator[TreeNode]:
        """Yield the node itself, then each owner up to and including the root."""
        current = index
        while current is not None:
            node = self.nodes[current]
            yield node
            current = node.parent

    def resolve(self, index: int, name: str) -> TreeNode | None:
        """Find the node `name` would load as from `index`, nearest first."""
        for node in self.ancestors(index):
            child = self.child_named(node.index, name)
            if child is not None:
                return child
        return None

    def link(self, requester: int, name: str, target: int):
        node = self.nodes[requester]
        node.requires[name] = target
        node.missing.discard(name)

    def required(self, index: int, name: str) -> TreeNode | None:
        target = self.nodes[index].requires.get(name)
        if target is None:
            return None
        return self.nodes.get(target)

    def location(self, index: int) -> tuple[str, ...]:
        names = [node.name for node in self.ancestors(index) if not node.is_root]
        return tuple(reversed(names))

    def depth(self, index: int) -> int:
        return len(self.location(index))

    def path(self, index: int) -> Path:
        return location_path(self.root_dir, self.location(index))

    def find(self, location: tuple[str, ...]) -> TreeNode | None:
        if not location:
            return self.root
        index = self._locations.get(tuple(location))
        return self.nodes.get(index) if index is not None else None

    def find_by_name(self, name: str) -> list[TreeNode]:
        return [node for node in self.walk() if node.name == name and not node.is_root]

    def walk(self, start: int | None = None) -> Iterator[TreeNode]:
        """Pre-order traversal over owned nodes."""
        stack = [self.root_index if start is None else start]
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def subtree(self, index: int) -> set[int]:
        return {node.index for node in self.walk(index)}

    def mark_extraneous(self, index: int, extraneous: bool = True):
        self.nodes[index].extraneous = extraneous

    def excise(self, index: int, keep: set[int] | frozenset = frozenset()) -> list[tuple[TreeNode, tuple[str, ...]]]:
        """Remove a node and its owned subtree.

        Descendants listed in `keep` survive: each outermost one is re-parented
        to the nearest surviving ancestor without a same-named child. Returns
        the relocated nodes with their previous locations. `requires` edges
        left pointing at deleted nodes are dropped and recorded as missing.
        """
        node = self.nodes[index]
        if node.is_root:
            raise ValueError('cannot excise the root of a tree')

        doomed = self.subtree(index)
        rescued = [i for i in keep if i in doomed and i != index]
        outermost = [
            i for i in rescued
            if not any(a.index in rescued for a in self.ancestors(self.nodes[i].parent))
        ]

        self.nodes[node.parent].children.remove(index)
        for i in doomed:
            self._locations.pop(self.location(i), None)

        moved = []
        for i in sorted(outermost, key=lambda i: self.location(i)):
            previous = self.location(i)
            self.nodes[self.nodes[i].parent].children.remove(i)
            self._attach(i, node.parent, previous)
            doomed -= self.subtree(i)
            moved.append((self.nodes[i], previous))

        for i in doomed:
            del self.nodes[i]
        self._drop_dangling()
        return moved

    def _attach(self, index: int, parent: int, previous: tuple[str, ...]):
        name = self.nodes[index].name
        destination = parent
        while self.child_named(destination, name) is not None:
            destination = self.nodes[destination].parent
            if destination is None:
                raise ResolutionConflict(f'no place left to keep {"/".join(previous)} after removing its owner')
        self.nodes[index].parent = destination
        self.nodes[destination].children.append(index)
        for child in self.walk(index):
            self._locations[self.location(child.index)] = child.index

    def _drop_dangling(self):
        for node in self.nodes.values():
            for name, target in list(node.requires.items()):
                if target not in self.nodes:
                    del node.requires[name]
                    node.missing.add(name)

    def clone(self) -> 'PackageTree':
        """Deep copy; indices are shared with the original."""
        return deepcopy(self)


def location_path(root_dir: Path, location: tuple[str, ...]) -> Path:
    path = Path(root_dir)
    for name in location:
        path = path / MODULES_DIR_NAME / name
    return path
