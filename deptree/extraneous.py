from typing import Callable, Iterable

from deptree.tree import PackageTree, TreeNode


def requested_names(tree: PackageTree, production: bool = False) -> list[str]:
    """Names the project manifest asks for. Dev dependencies drop out in production."""
    return list(tree.root.declared(include_dev=not production))


def _all_edges(node: TreeNode) -> Iterable[str]:
    return node.requires.keys()


def _required_edges(node: TreeNode) -> Iterable[str]:
    return [name for name in node.requires if name not in node.optional_dependencies]


def _mark(
    tree: PackageTree,
    names: Iterable[str],
    exclude: set[int] | frozenset,
    edges: Callable[[TreeNode], Iterable[str]],
) -> set[int]:
    seen = {tree.root_index}
    stack = [tree.root.requires[name] for name in names if name in tree.root.requires]
    while stack:
        index = stack.pop()
        if index in seen or index in exclude or index not in tree:
            continue
        seen.add(index)
        node = tree[index]
        stack.extend(node.requires[name] for name in edges(node))
    return seen


def reachable(
    tree: PackageTree,
    names: Iterable[str] | None = None,
    exclude: set[int] | frozenset = frozenset(),
    production: bool = False,
) -> set[int]:
    """Mark phase of the mark-and-sweep: indices reachable over requires edges.

    Starts from the root's edges for `names` (default: every requested name)
    and never enters a node in `exclude`. The root is always included.
    """
    if names is None:
        names = requested_names(tree, production)
    return _mark(tree, names, exclude, _all_edges)


def classify(tree: PackageTree, production: bool = False) -> set[int]:
    """Flag every node and return the indices of the extraneous ones.

    Always recomputed from the current state of the tree.
    """
    root = tree.root
    kept = reachable(tree, production=production)
    from_prod = _mark(tree, root.declared(include_dev=False), frozenset(), _all_edges)
    strictly = _mark(tree, list(root.dependencies) + list(root.dev_dependencies), frozenset(), _required_edges)
    requested = set(requested_names(tree, production))

    extraneous = set()
    for node in tree.walk():
        if node.is_root:
            continue
        tree.mark_extraneous(node.index, node.index not in kept)
        node.dev = node.index in kept and node.index not in from_prod
        node.optional = node.index in kept and node.index not in strictly
        node.requested = node.name in requested and root.requires.get(node.name) == node.index
        if node.extraneous:
            extraneous.add(node.index)
    return extraneous


def is_extraneous(tree: PackageTree, index: int, production: bool = False) -> bool:
    return index in classify(tree, production)
