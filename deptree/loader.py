from pathlib import Path

import yaml

from deptree.constants import MANIFEST_NAME, MODULES_DIR_NAME
from deptree.errors import ManifestError
from deptree.output import warning
from deptree.tree import PackageTree

MANIFEST_FIELDS = {
    'dependencies': 'dependencies',
    'devDependencies': 'dev_dependencies',
    'optionalDependencies': 'optional_dependencies',
    'peerDependencies': 'peer_dependencies',
    'scripts': 'scripts',
}


def read_manifest(path: Path) -> dict:
    """Load the package.yaml found in a package directory."""
    manifest = Path(path) / MANIFEST_NAME
    if not manifest.exists():
        raise ManifestError(f'No {MANIFEST_NAME} in {path}')
    with open(manifest) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ManifestError(f'Invalid {manifest}: {e}') from e
    if not isinstance(data, dict):
        raise ManifestError(f'Invalid {manifest}: expected a mapping')
    if not data.get('name'):
        raise ManifestError(f'{manifest} has no name')
    return data


def save_manifest(path: Path, data: dict):
    with open(Path(path) / MANIFEST_NAME, 'w') as f:
        yaml.safe_dump(data, f, sort_keys=False, default_flow_style=False)


def manifest_attrs(data: dict) -> dict:
    """Translate manifest keys into TreeNode fields."""
    attrs = {}
    for key, attr in MANIFEST_FIELDS.items():
        value = data.get(key) or {}
        if not isinstance(value, dict):
            raise ManifestError(f'{data.get("name")}: {key} must be a mapping')
        attrs[attr] = {str(k): str(v) for k, v in value.items()}
    return attrs


def load_tree(root_dir: Path) -> PackageTree:
    """Build the current tree from what is installed under root_dir."""
    root_dir = Path(root_dir)
    data = read_manifest(root_dir)
    tree = PackageTree(root_dir, data['name'], str(data.get('version', '0.0.0')))
    for attr, value in manifest_attrs(data).items():
        setattr(tree.root, attr, value)

    _load_children(tree, tree.root_index, root_dir)
    link_requirements(tree)
    return tree


def _load_children(tree: PackageTree, parent: int, path: Path):
    modules = path / MODULES_DIR_NAME
    if not modules.is_dir():
        return

    for name, entry in _package_dirs(modules):
        try:
            data = read_manifest(entry)
        except ManifestError as e:
            warning(f'Skipping {entry}: {e}')
            continue

        if data['name'] != name:
            warning(f'{entry} declares name {data["name"]}, using directory name')

        node = tree.add_node(name, str(data.get('version', '0.0.0')), parent, **manifest_attrs(data))
        _load_children(tree, node.index, entry)


def _package_dirs(modules: Path):
    """Yield (name, directory) for each installed package; @scope/name lives one level deeper."""
    for entry in sorted(modules.iterdir()):
        if not entry.is_dir() or entry.name.startswith('.'):
            continue
        if not entry.name.startswith('@'):
            yield entry.name, entry
            continue
        for scoped in sorted(entry.iterdir()):
            if scoped.is_dir() and not scoped.name.startswith('.'):
                yield f'{entry.name}/{scoped.name}', scoped


def link_requirements(tree: PackageTree, start: int | None = None):
    """Resolve declared dependencies into requires edges by walking up the tree."""
    for node in tree.walk(start):
        for name in node.declared(include_dev=node.is_root):
            target = tree.resolve(node.index, name)
            if target is None:
                node.missing.add(name)
            else:
                tree.link(node.index, name, target.index)


def add_dependencies(tree: PackageTree, specs: dict[str, str], dev: bool = False):
    """Declare new dependencies on the root of an already loaded tree."""
    root = tree.root
    target = root.dev_dependencies if dev else root.dependencies
    for name, spec in specs.items():
        root.dependencies.pop(name, None)
        root.dev_dependencies.pop(name, None)
        target[name] = spec
        found = tree.resolve(root.index, name)
        if found is not None:
            tree.link(root.index, name, found.index)
        else:
            root.missing.add(name)


def root_manifest(tree: PackageTree) -> dict:
    """Manifest data for the root, preserving any keys the tree does not model."""
    data = read_manifest(tree.root_dir)
    root = tree.root
    for key, attr in MANIFEST_FIELDS.items():
        value = getattr(root, attr)
        if value:
            data[key] = dict(value)
        else:
            data.pop(key, None)
    return data
