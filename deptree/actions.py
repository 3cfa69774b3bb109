import shutil
from pathlib import Path

from deptree.constants import MODULES_DIR_NAME
from deptree.pipeline import Action
from deptree.registry import Fetcher


def remove_package(path: Path):
    """Delete an installed package directory, nested modules included."""
    if not path.exists():
        return
    shutil.rmtree(path)


def move_package(source: Path, destination: Path):
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(source), str(destination))


def install_package(fetcher: Fetcher, name: str, version: str, path: Path):
    path.mkdir(parents=True, exist_ok=True)
    fetcher.fetch(name, version, path)


def update_package(fetcher: Fetcher, name: str, version: str, path: Path):
    """Replace a package's own files in place, keeping its nested modules."""
    if path.exists():
        for entry in path.iterdir():
            if entry.name == MODULES_DIR_NAME:
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
    install_package(fetcher, name, version, path)


def removal(path: Path, label: str) -> Action:
    return Action(label, lambda: remove_package(path))


def relocation(source: Path, destination: Path, label: str) -> Action:
    return Action(label, lambda: move_package(source, destination))


def installation(fetcher: Fetcher | None, name: str, version: str, path: Path, label: str) -> Action:
    if fetcher is None:
        raise ValueError(f'cannot {label} without a fetcher')
    return Action(label, lambda: install_package(fetcher, name, version, path))


def replacement(fetcher: Fetcher | None, name: str, version: str, path: Path, label: str) -> Action:
    if fetcher is None:
        raise ValueError(f'cannot {label} without a fetcher')
    return Action(label, lambda: update_package(fetcher, name, version, path))
