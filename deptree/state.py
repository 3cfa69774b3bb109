from pathlib import Path

import yaml

from deptree.constants import LOCKFILE_NAME
from deptree.tree import PackageTree

LOCKFILE_VERSION = 1


def _entry(tree: PackageTree, index: int) -> dict:
    node = tree[index]
    entry = {'version': node.version}
    if node.dev:
        entry['dev'] = True
    if node.optional:
        entry['optional'] = True
    if node.requires:
        entry['requires'] = {name: tree[target].version for name, target in sorted(node.requires.items())}
    if node.children:
        entry['dependencies'] = {child.name: _entry(tree, child.index) for child in tree.children(index)}
    return entry


def lock_data(tree: PackageTree) -> dict:
    """Nested mapping mirroring the ownership structure of the tree."""
    root = tree.root
    return {
        'name': root.name,
        'version': root.version,
        'lockfileVersion': LOCKFILE_VERSION,
        'dependencies': {child.name: _entry(tree, child.index) for child in tree.top_level()},
    }


def load_lock(root_dir: Path) -> dict:
    """Load the lockfile of a project, if there is one."""
    path = Path(root_dir) / LOCKFILE_NAME
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def save_lock(tree: PackageTree):
    with open(tree.root_dir / LOCKFILE_NAME, 'w') as f:
        yaml.safe_dump(lock_data(tree), f, sort_keys=False, default_flow_style=False)
