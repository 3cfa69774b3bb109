"""Fixed run shared by every subcommand.

A run loads the current tree, asks the command for its ideal tree, diffs the
two, applies the operations, runs lifecycle scripts, persists the lockfile and
reports. Commands differ only in the two hooks they plug into that sequence.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from deptree.constants import DEFAULT_JOBS
from deptree.errors import InvalidSelector, LifecycleError, ResolutionConflict
from deptree.extraneous import classify
from deptree.ideal import build_ideal_tree
from deptree.lifecycle import run_lifecycles
from deptree.loader import add_dependencies, load_tree, root_manifest, save_manifest
from deptree.output import debug
from deptree.pipeline import run_steps
from deptree.plan import Operation, OpKind, RunSummary, diff_trees, plan_steps, prune_tree, summarize
from deptree.progress import ProgressGroup
from deptree.registry import Fetcher, Resolver
from deptree.state import save_lock
from deptree.tree import PackageTree


@dataclass
class RunContext:
    """Options and state of one run against a project root."""

    root_dir: Path
    selectors: list[str] = field(default_factory=list)
    additions: dict[str, str] = field(default_factory=dict)
    save_dev: bool = False
    production: bool = False
    dry_run: bool = False
    ignore_scripts: bool = False
    jobs: int = DEFAULT_JOBS
    resolver: Resolver | None = None
    fetcher: Fetcher | None = None
    progress: ProgressGroup = field(default_factory=lambda: ProgressGroup('deptree'))
    current: PackageTree | None = None
    ideal: PackageTree | None = None
    operations: list[Operation] = field(default_factory=list)


@dataclass
class RunResult:
    command: str
    summary: RunSummary
    operations: list[Operation]
    dry_run: bool = False


@dataclass(frozen=True)
class Command:
    """Strategy bundle selecting how a subcommand fills the two hooks."""

    name: str
    compute_ideal: Callable[[RunContext, ProgressGroup], PackageTree]
    lifecycle: Callable[[RunContext, ProgressGroup], None]


def _require_resolver(ctx: RunContext) -> Resolver:
    if ctx.resolver is None:
        raise ResolutionConflict('No registry configured, set one with --registry or in config')
    return ctx.resolver


def install_ideal(ctx: RunContext, group: ProgressGroup) -> PackageTree:
    if ctx.additions:
        add_dependencies(ctx.current, ctx.additions, dev=ctx.save_dev)
    group.start()
    return build_ideal_tree(ctx.current, _require_resolver(ctx), production=ctx.production)


def update_ideal(ctx: RunContext, group: ProgressGroup) -> PackageTree:
    declared = ctx.current.root.declared(include_dev=True)
    for name in ctx.selectors:
        if name not in declared:
            raise InvalidSelector(f'{name} is not a dependency of {ctx.current.root}')
    group.start()
    return build_ideal_tree(
        ctx.current,
        _require_resolver(ctx),
        production=ctx.production,
        update_all=not ctx.selectors,
        update_names=ctx.selectors,
    )


def prune_ideal(ctx: RunContext, group: ProgressGroup) -> PackageTree:
    return prune_tree(ctx.current.clone(), ctx.selectors, ctx.production, group)


def run_scripts(ctx: RunContext, group: ProgressGroup):
    if ctx.ignore_scripts:
        debug('Skipping lifecycle scripts')
        return
    changed = [
        ctx.ideal.find(op.location).index
        for op in ctx.operations
        if op.kind in (OpKind.ADD, OpKind.UPDATE)
    ]
    failed = run_lifecycles(ctx.ideal, changed, ctx.dry_run, group)
    if failed is not None:
        raise LifecycleError(f'{failed.package} {failed.event} exited non-zero')


def skip_scripts(ctx: RunContext, group: ProgressGroup):
    pass


INSTALL = Command('install', install_ideal, run_scripts)
UPDATE = Command('update', update_ideal, run_scripts)
PRUNE = Command('prune', prune_ideal, skip_scripts)

COMMANDS = {command.name: command for command in (INSTALL, UPDATE, PRUNE)}


def run_command(command: Command, ctx: RunContext) -> RunResult:
    progress = ctx.progress

    group = progress.new_group('loadCurrentTree')
    group.start()
    ctx.current = load_tree(ctx.root_dir)
    classify(ctx.current, ctx.production)
    group.finish()

    group = progress.new_group('loadIdealTree')
    ctx.ideal = command.compute_ideal(ctx, group)
    group.finish()

    group = progress.new_group('diffTrees')
    group.start()
    ctx.operations = diff_trees(ctx.current, ctx.ideal)
    steps = plan_steps(ctx.operations, ctx.root_dir, ctx.fetcher)
    group.finish()

    group = progress.new_group('executeActions')
    group.start(len(steps))
    run_steps(steps, ctx.dry_run, group, ctx.jobs)
    group.finish()

    group = progress.new_group('runLifecycles')
    command.lifecycle(ctx, group)
    group.finish()

    group = progress.new_group('saveLockfile')
    if not ctx.dry_run:
        group.start(1)
        if ctx.additions:
            save_manifest(ctx.root_dir, root_manifest(ctx.ideal))
        save_lock(ctx.ideal)
        group.tick(str(ctx.root_dir))
    group.finish()

    return RunResult(command.name, summarize(ctx.operations), ctx.operations, ctx.dry_run)
