import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from deptree.errors import ManifestError, ResolutionConflict
from deptree.loader import manifest_attrs, read_manifest


@dataclass
class ResolvedPackage:
    """A dependency spec pinned to one concrete version."""

    name: str
    version: str
    dependencies: dict[str, str] = field(default_factory=dict)
    optional_dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)
    scripts: dict[str, str] = field(default_factory=dict)


class Resolver(Protocol):
    def resolve(self, name: str, spec: str, installed: str | None = None) -> ResolvedPackage: ...

    def satisfies(self, spec: str, version: str) -> bool: ...


class Fetcher(Protocol):
    def fetch(self, name: str, version: str, destination: Path) -> None: ...


def version_key(version: str) -> tuple:
    """Sort key that orders numeric components numerically."""
    return tuple((0, int(part), '') if part.isdigit() else (1, 0, part) for part in re.split(r'[.\-+]', version))


def satisfies(spec: str, version: str) -> bool:
    """Minimal spec matching: exact versions, `*`, `latest` and `1.x` wildcards."""
    spec = spec.strip()
    if spec in ('', '*', 'latest'):
        return True
    if 'x' not in spec.split('.'):
        return spec == version
    wanted = spec.split('.')
    actual = version.split('.')
    if len(actual) < len(wanted):
        return False
    return all(w == 'x' or w == a for w, a in zip(wanted, actual))


class DirectoryRegistry:
    """Local registry laid out as <path>/<name>/<version>/package.yaml.

    Serves both as the resolver for ideal-tree construction and as the
    fetcher that copies package contents into place.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def versions(self, name: str) -> list[str]:
        package_dir = self.path / name
        if not package_dir.is_dir():
            return []
        found = [entry.name for entry in package_dir.iterdir() if entry.is_dir()]
        return sorted(found, key=version_key)

    def satisfies(self, spec: str, version: str) -> bool:
        return satisfies(spec, version)

    def resolve(self, name: str, spec: str, installed: str | None = None) -> ResolvedPackage:
        available = self.versions(name)
        if not available:
            raise ResolutionConflict(f'{name} is not in the registry at {self.path}')

        if installed is not None and installed in available and self.satisfies(spec, installed):
            version = installed
        else:
            matching = [v for v in available if self.satisfies(spec, v)]
            if not matching:
                raise ResolutionConflict(f'No version of {name} matches {spec} (have {", ".join(available)})')
            version = matching[-1]

        try:
            data = read_manifest(self.path / name / version)
        except ManifestError as e:
            raise ResolutionConflict(f'{name}@{version}: {e}') from e

        attrs = manifest_attrs(data)
        return ResolvedPackage(
            name=name,
            version=version,
            dependencies=attrs['dependencies'],
            optional_dependencies=attrs['optional_dependencies'],
            peer_dependencies=attrs['peer_dependencies'],
            scripts=attrs['scripts'],
        )

    def fetch(self, name: str, version: str, destination: Path) -> None:
        source = self.path / name / version
        if not source.is_dir():
            raise FileNotFoundError(f'{name}@{version} missing from registry at {self.path}')
        shutil.copytree(source, destination, dirs_exist_ok=True)
