from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable

from deptree.actions import installation, relocation, removal, replacement
from deptree.errors import InvalidSelector
from deptree.extraneous import classify, reachable
from deptree.output import debug, warning
from deptree.pipeline import Action, Step
from deptree.progress import ProgressGroup
from deptree.registry import Fetcher
from deptree.tree import PackageTree, TreeNode, location_path, same_package


class OpKind(str, Enum):
    ADD = 'add'
    REMOVE = 'remove'
    UPDATE = 'update'
    MOVE = 'move'


KIND_ORDER = {OpKind.REMOVE: 0, OpKind.MOVE: 1, OpKind.UPDATE: 2, OpKind.ADD: 3}


@dataclass(frozen=True)
class Operation:
    """A single change needed to turn the current tree into the ideal one."""

    kind: OpKind
    name: str
    version: str
    location: tuple[str, ...]
    previous_version: str | None = None
    previous_location: tuple[str, ...] | None = None

    @property
    def depth(self) -> int:
        return len(self.location)

    @property
    def package(self) -> str:
        return f'{self.name}@{self.version}'

    def __str__(self) -> str:
        where = '/'.join(self.location)
        if self.kind is OpKind.UPDATE:
            return f'{self.name} {self.previous_version} → {self.version} ({where})'
        if self.kind is OpKind.MOVE:
            return f'{self.package} ({"/".join(self.previous_location)} → {where})'
        return f'{self.package} ({where})'


@dataclass
class RunSummary:
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    moved: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.added or self.removed or self.updated or self.moved)


def select_extraneous(tree: PackageTree, names: Iterable[str] = (), production: bool = False) -> list[TreeNode]:
    """Top-level packages to prune.

    Without names, every extraneous top-level package. With names, only the
    extraneous top-level packages among them; nested packages are never
    picked by name and only go when whatever owns them goes.
    """
    names = list(names)
    extraneous = classify(tree, production)

    for name in names:
        if not tree.find_by_name(name):
            raise InvalidSelector(f'{name} is not installed')
        top = tree.child_named(tree.root_index, name)
        if top is None:
            warning(f'{name} is not a top-level package, prune what requires it instead')
        elif top.index not in extraneous:
            debug(f'{name} is still required, keeping it')

    return [
        node for node in tree.top_level()
        if node.index in extraneous and (not names or node.name in names)
    ]


def closure(
    tree: PackageTree,
    indices: Iterable[int],
    exclude: set[int] | frozenset = frozenset(),
) -> set[int]:
    """Everything owned by, or required through, the given nodes, never entering `exclude`."""
    seen = set()
    stack = list(indices)
    while stack:
        index = stack.pop()
        if index in seen or index in exclude or index not in tree:
            continue
        seen.add(index)
        node = tree[index]
        stack.extend(node.children)
        stack.extend(node.requires.values())
    return seen


def remove_deps(
    selection: Iterable[TreeNode],
    tree: PackageTree,
    keep: set[int] | frozenset = frozenset(),
    group: ProgressGroup | None = None,
) -> PackageTree:
    """Excise each selected top-level package with its owned subtree."""
    selection = list(selection)
    if group is not None:
        group.start(len(selection))
    for node in selection:
        if node.index not in tree:
            continue
        for relocated, previous in tree.excise(node.index, keep):
            debug(f'kept {relocated} by moving it out of {"/".join(previous)}')
        if group is not None:
            group.tick(str(node))
    return tree


def load_extraneous(
    tree: PackageTree,
    candidates: set[int] | None = None,
    production: bool = False,
    group: ProgressGroup | None = None,
    held: set[int] | frozenset = frozenset(),
) -> list[TreeNode]:
    """Re-classify after a removal and sweep what was left without a requirer.

    Classification is a full mark from the requested set, so one sweep
    reaches the fixpoint. With `candidates`, only those nodes may go.
    Nodes in `held` are kept and relocated like requested ones.
    """
    extraneous = classify(tree, production)
    doomed = extraneous if candidates is None else extraneous & candidates
    keep = reachable(tree, production=production) | held

    ordered = [node for node in tree.walk() if node.index in doomed]
    if group is not None:
        group.start(len(ordered))

    swept = []
    for node in ordered:
        if node.index not in tree:
            continue
        tree.excise(node.index, keep)
        swept.append(node)
        if group is not None:
            group.tick(str(node))
    return swept


def prune_tree(
    tree: PackageTree,
    names: Iterable[str] = (),
    production: bool = False,
    group: ProgressGroup | None = None,
) -> PackageTree:
    """Turn a copy of the current tree into the ideal tree for prune."""
    if group is None:
        group = ProgressGroup('prune')
    names = list(names)

    selection = select_extraneous(tree, names, production)
    selected = {node.index for node in selection}
    keep = reachable(tree, production=production, exclude=selected)
    held = set()
    candidates = None
    if names:
        reached = closure(tree, selected)
        # Extraneous packages left out of the selection stay, and so does whatever they require
        others = [node.index for node in tree.top_level() if node.extraneous and node.index not in reached]
        held = closure(tree, others, exclude=selected)
        keep |= held
        candidates = reached - keep

    remove_deps(selection, tree, keep, group.new_group('removeDeps'))
    load_extraneous(tree, candidates, production, group.new_group('loadExtraneous'), held)
    return tree


def diff_trees(current: PackageTree, ideal: PackageTree) -> list[Operation]:
    """Location-keyed diff; a removal and an addition of the same package become a move."""
    before = {current.location(n.index): n for n in current.walk() if not n.is_root}
    after = {ideal.location(n.index): n for n in ideal.walk() if not n.is_root}

    operations = []
    removals = []
    for location in sorted(before):
        node = before[location]
        other = after.get(location)
        if other is None:
            removals.append(Operation(OpKind.REMOVE, node.name, node.version, location))
        elif not same_package(node, other):
            operations.append(
                Operation(OpKind.UPDATE, other.name, other.version, location, previous_version=node.version)
            )

    pending: dict[tuple[str, str], list[Operation]] = {}
    for op in removals:
        pending.setdefault((op.name, op.version), []).append(op)

    for location in sorted(after):
        if location in before:
            continue
        node = after[location]
        matches = pending.get((node.name, node.version))
        if matches:
            source = matches.pop(0)
            operations.append(
                Operation(OpKind.MOVE, node.name, node.version, location, previous_location=source.location)
            )
        else:
            operations.append(Operation(OpKind.ADD, node.name, node.version, location))

    for matches in pending.values():
        operations.extend(matches)

    return sorted(operations, key=lambda op: (KIND_ORDER[op.kind], op.location))


def _under(location: tuple[str, ...], prefix: tuple[str, ...]) -> bool:
    return len(location) > len(prefix) and location[:len(prefix)] == prefix


def _carrier(location: tuple[str, ...], sources: list[tuple[str, ...]]) -> tuple[str, ...] | None:
    containing = [s for s in sources if _under(location, s)]
    return max(containing, key=len) if containing else None


def plan_steps(operations: list[Operation], root_dir: Path, fetcher: Fetcher | None = None) -> list[Step]:
    """Order operations into pipeline steps.

    Operations sharing a step never touch the same directory. Removals nested
    in another removal, and moves carried along by an enclosing move, are
    covered by that outer action and get none of their own.
    """
    removes = [op for op in operations if op.kind is OpKind.REMOVE]
    moves = [op for op in operations if op.kind is OpKind.MOVE]
    updates = [op for op in operations if op.kind is OpKind.UPDATE]
    adds = [op for op in operations if op.kind is OpKind.ADD]
    sources = [op.previous_location for op in moves]

    def implied_removal(op):
        carrier = _carrier(op.location, sources)
        return any(
            _under(op.location, other.location) and _carrier(other.location, sources) == carrier
            for other in removes
        )

    def implied_move(op):
        for other in moves:
            if other is op or not _under(op.previous_location, other.previous_location):
                continue
            relative = op.previous_location[len(other.previous_location):]
            if op.location == other.location + relative:
                return True
        return False

    def path(location):
        return location_path(root_dir, location)

    def act(op) -> Action:
        label = f'{op.kind.value} {op}'
        if op.kind is OpKind.REMOVE:
            return removal(path(op.location), label)
        if op.kind is OpKind.MOVE:
            return relocation(path(op.previous_location), path(op.location), label)
        if op.kind is OpKind.UPDATE:
            return replacement(fetcher, op.name, op.version, path(op.location), label)
        return installation(fetcher, op.name, op.version, path(op.location), label)

    active_removes = [op for op in removes if not implied_removal(op)]
    deferred = [op for op in active_removes if any(_under(s, op.location) for s in sources)]
    first = [op for op in active_removes if op not in deferred]
    active_moves = [op for op in moves if not implied_move(op)]

    steps = []
    if first:
        steps.append(Step('remove', [act(op) for op in first]))
    for depth in sorted({len(op.previous_location) for op in active_moves}, reverse=True):
        steps.append(Step(f'move:{depth}', [act(op) for op in active_moves if len(op.previous_location) == depth]))
    if deferred:
        steps.append(Step('removeMoved', [act(op) for op in deferred]))
    if updates:
        steps.append(Step('update', [act(op) for op in updates]))
    for depth in sorted({op.depth for op in adds}):
        steps.append(Step(f'add:{depth}', [act(op) for op in adds if op.depth == depth]))
    return steps


def summarize(operations: Iterable[Operation]) -> RunSummary:
    summary = RunSummary()
    for op in operations:
        if op.kind is OpKind.ADD:
            summary.added.append(op.package)
        elif op.kind is OpKind.REMOVE:
            summary.removed.append(op.package)
        elif op.kind is OpKind.UPDATE:
            summary.updated.append(op.package)
        else:
            summary.moved.append(op.package)
    return summary
