import subprocess
from dataclasses import dataclass
from pathlib import Path

from deptree.constants import LIFECYCLE_EVENTS
from deptree.output import error, info, success
from deptree.progress import ProgressGroup
from deptree.tree import PackageTree


@dataclass
class Script:
    """A lifecycle script declared by a package."""

    package: str
    event: str
    command: str
    cwd: Path


def package_scripts(tree: PackageTree, index: int) -> list[Script]:
    """Scripts of one package, in the order the events fire."""
    node = tree[index]
    return [
        Script(package=str(node), event=event, command=node.scripts[event], cwd=tree.path(index))
        for event in LIFECYCLE_EVENTS
        if node.scripts.get(event)
    ]


def execute_script(script: Script) -> bool:
    """Execute a lifecycle script. Returns True if successful."""
    result = subprocess.run(['bash', '-c', script.command], cwd=script.cwd)
    return result.returncode == 0


def run_script(script: Script, dry_run: bool = False) -> bool:
    """Run one script, reporting as it goes. Returns True if successful."""
    info(f'Running {script.event} for {script.package}')

    if dry_run:
        return True

    if not execute_script(script):
        error(f'Script failed: {script.package} {script.event}: {script.command}')
        return False

    success(f'{script.event} completed: {script.package}')
    return True


def run_lifecycles(
    tree: PackageTree,
    indices: list[int],
    dry_run: bool = False,
    group: ProgressGroup | None = None,
) -> Script | None:
    """Run install scripts for the given packages, deepest first, then the project's own.

    Returns the script that failed, or None when all of them succeeded.
    """
    ordered = sorted(indices, key=lambda i: (-tree.depth(i), tree.location(i)))
    scripts = [script for i in ordered for script in package_scripts(tree, i)]
    scripts.extend(package_scripts(tree, tree.root_index))

    if group is not None:
        group.start(len(scripts))

    for script in scripts:
        if not run_script(script, dry_run):
            if group is not None:
                group.fail(f'{script.package} {script.event}')
            return script
        if group is not None:
            group.tick(f'{script.package} {script.event}')
    return None
