from collections import deque
from typing import Iterable

from deptree.errors import ResolutionConflict
from deptree.extraneous import classify
from deptree.loader import link_requirements
from deptree.output import debug, warning
from deptree.registry import ResolvedPackage, Resolver
from deptree.tree import PackageTree, TreeNode


def build_ideal_tree(
    current: PackageTree,
    resolver: Resolver,
    production: bool = False,
    update_all: bool = False,
    update_names: Iterable[str] = (),
    keep_extraneous: bool = True,
) -> PackageTree:
    """Compute the target tree for install and update.

    Every declared spec is resolved and placed as shallow as it can go without
    clashing with another version of the same name. Unless a name is being
    updated, the version already installed at the same place is preferred so
    satisfied subtrees come through unchanged.
    """
    source = current.root
    ideal = PackageTree(current.root_dir, source.name, source.version)
    root = ideal.root
    root.dependencies = dict(source.dependencies)
    root.dev_dependencies = dict(source.dev_dependencies)
    root.optional_dependencies = dict(source.optional_dependencies)
    root.peer_dependencies = dict(source.peer_dependencies)
    root.scripts = dict(source.scripts)

    refresh = set(update_names)
    queue = deque([ideal.root_index])
    while queue:
        node = ideal[queue.popleft()]
        for name, spec in node.declared(include_dev=node.is_root and not production).items():
            preferred = None
            if not update_all and name not in refresh:
                preferred = _installed_version(current, ideal, node.index, name)
            try:
                placed = _satisfy(ideal, resolver, node.index, name, spec, preferred)
            except ResolutionConflict as e:
                if name not in node.optional_dependencies:
                    raise
                warning(f'Skipping optional dependency {name} of {node}: {e}')
                node.missing.add(name)
                continue
            if placed is not None:
                queue.append(placed.index)

    _check_peers(ideal, resolver)

    if keep_extraneous:
        _graft_extraneous(current, ideal, production)

    classify(ideal, production)
    return ideal


def _installed_version(current: PackageTree, ideal: PackageTree, requester: int, name: str) -> str | None:
    location = ideal.location(requester)
    while location and current.find(location) is None:
        location = location[:-1]
    base = current.find(location)
    found = current.resolve(base.index, name)
    return found.version if found is not None else None


def _satisfy(
    tree: PackageTree,
    resolver: Resolver,
    requester: int,
    name: str,
    spec: str,
    preferred: str | None,
) -> TreeNode | None:
    """Link `requester` to a node for name@spec. Returns the node if it is new."""
    visible = tree.resolve(requester, name)
    if visible is not None and resolver.satisfies(spec, visible.version):
        tree.link(requester, name, visible.index)
        return None

    package = resolver.resolve(name, spec, installed=preferred)
    parent = placement(tree, requester, name, package.version)
    node = _add_package(tree, parent, package)
    tree.link(requester, name, node.index)
    debug(f'placed {node} at {"/".join(tree.location(node.index))} for {tree[requester]}')
    return node


def _add_package(tree: PackageTree, parent: int, package: ResolvedPackage) -> TreeNode:
    return tree.add_node(
        package.name,
        package.version,
        parent,
        dependencies=dict(package.dependencies),
        optional_dependencies=dict(package.optional_dependencies),
        peer_dependencies=dict(package.peer_dependencies),
        scripts=dict(package.scripts),
    )


def placement(tree: PackageTree, requester: int, name: str, version: str) -> int:
    """Shallowest owner for name@version as seen from `requester`.

    Walks up from the requester and stops below the first level that already
    owns a `name`, or where the new node would shadow a different version
    that something inside that level already relies on.
    """
    target = None
    for ancestor in tree.ancestors(requester):
        if tree.child_named(ancestor.index, name) is not None:
            break
        if _would_shadow(tree, ancestor.index, name, version):
            break
        target = ancestor.index

    if target is None:
        owned = tree.child_named(requester, name)
        held = f'already holds {owned}' if owned is not None else f'a package below it relies on another {name}'
        raise ResolutionConflict(f'{tree[requester]} needs {name}@{version} but {held}')
    return target


def _would_shadow(tree: PackageTree, index: int, name: str, version: str) -> bool:
    inside = tree.subtree(index)
    for i in inside:
        target = tree[i].requires.get(name)
        if target is not None and target not in inside and tree[target].version != version:
            return True
    return False


def _check_peers(tree: PackageTree, resolver: Resolver):
    for node in tree.walk():
        if node.is_root:
            continue
        for peer, spec in node.peer_dependencies.items():
            provider = tree.resolve(node.parent, peer)
            if provider is None:
                warning(f'{node} wants peer {peer}@{spec}, which is not installed')
                continue
            if not resolver.satisfies(spec, provider.version):
                raise ResolutionConflict(f'{node} needs peer {peer}@{spec} but {provider} is installed')
            tree.link(node.index, peer, provider.index)


def _graft_extraneous(current: PackageTree, ideal: PackageTree, production: bool):
    """Carry top-level packages nobody asks for over unchanged; install leaves them to prune."""
    extraneous = classify(current, production)
    for node in current.top_level():
        if node.index not in extraneous or ideal.child_named(ideal.root_index, node.name) is not None:
            continue
        grafted = _copy_subtree(current, ideal, node.index, ideal.root_index)
        link_requirements(ideal, grafted.index)


def _copy_subtree(source: PackageTree, target: PackageTree, index: int, parent: int) -> TreeNode:
    node = source[index]
    copy = target.add_node(
        node.name,
        node.version,
        parent,
        dependencies=dict(node.dependencies),
        optional_dependencies=dict(node.optional_dependencies),
        peer_dependencies=dict(node.peer_dependencies),
        scripts=dict(node.scripts),
    )
    for child in source.children(index):
        _copy_subtree(source, target, child.index, copy.index)
    return copy
