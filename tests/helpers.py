"""
Builders shared by the test modules: on-disk projects, registries and an
in-memory resolver.
"""

from pathlib import Path

import yaml

from deptree.constants import MANIFEST_NAME
from deptree.errors import ResolutionConflict
from deptree.loader import link_requirements
from deptree.registry import ResolvedPackage, satisfies, version_key
from deptree.tree import PackageTree, location_path


def write_package(
    path: Path,
    name: str,
    version: str = '1.0.0',
    dependencies: dict | None = None,
    dev: dict | None = None,
    optional: dict | None = None,
    peer: dict | None = None,
    scripts: dict | None = None,
) -> Path:
    """Write a package.yaml into `path`, creating the directory."""
    path.mkdir(parents=True, exist_ok=True)
    data = {'name': name, 'version': version}
    if dependencies:
        data['dependencies'] = dependencies
    if dev:
        data['devDependencies'] = dev
    if optional:
        data['optionalDependencies'] = optional
    if peer:
        data['peerDependencies'] = peer
    if scripts:
        data['scripts'] = scripts
    with open(path / MANIFEST_NAME, 'w') as f:
        yaml.safe_dump(data, f)
    return path


def install_at(root: Path, location: tuple, version: str = '1.0.0', **fields) -> Path:
    """Write an installed package at a location like ('B', 'D')."""
    return write_package(location_path(root, location), location[-1], version, **fields)


def publish(registry: Path, name: str, version: str, **fields) -> Path:
    return write_package(registry / name / version, name, version, **fields)


def scenario_project(root: Path) -> Path:
    """Project asking for A; A requires C; B and its private D linger undeclared."""
    write_package(root, 'app', dependencies={'A': '1.0.0'})
    install_at(root, ('A',), dependencies={'C': '1.0.0'})
    install_at(root, ('C',))
    install_at(root, ('B',), dependencies={'D': '1.0.0'})
    install_at(root, ('B', 'D'))
    return root


def scenario_tree(root_dir: Path = Path('/project')) -> PackageTree:
    """In-memory version of scenario_project."""
    tree = PackageTree(root_dir, 'app', '1.0.0')
    tree.root.dependencies = {'A': '1.0.0'}
    root = tree.root_index
    tree.add_node('A', '1.0.0', root, dependencies={'C': '1.0.0'})
    tree.add_node('C', '1.0.0', root)
    b = tree.add_node('B', '1.0.0', root, dependencies={'D': '1.0.0'})
    tree.add_node('D', '1.0.0', b.index)
    link_requirements(tree)
    return tree


def locations(tree: PackageTree) -> set[str]:
    return {'/'.join(tree.location(n.index)) for n in tree.walk() if not n.is_root}


class MemoryResolver:
    """Resolver over a dict of {name: {version: {dependencies, peer, optional}}}."""

    def __init__(self, packages: dict):
        self.packages = packages
        self.calls = []

    def satisfies(self, spec: str, version: str) -> bool:
        return satisfies(spec, version)

    def resolve(self, name: str, spec: str, installed: str | None = None) -> ResolvedPackage:
        self.calls.append((name, spec, installed))
        versions = self.packages.get(name, {})
        if installed is not None and installed in versions and satisfies(spec, installed):
            version = installed
        else:
            matching = sorted((v for v in versions if satisfies(spec, v)), key=version_key)
            if not matching:
                raise ResolutionConflict(f'No version of {name} matches {spec}')
            version = matching[-1]
        meta = versions[version]
        return ResolvedPackage(
            name=name,
            version=version,
            dependencies=dict(meta.get('dependencies', {})),
            optional_dependencies=dict(meta.get('optional', {})),
            peer_dependencies=dict(meta.get('peer', {})),
        )
