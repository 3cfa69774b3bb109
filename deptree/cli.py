from pathlib import Path

import typer
from rich.tree import Tree

from deptree import __version__
from deptree.config import get_jobs, get_registry, load_config, resolve_option
from deptree.errors import DeptreeError
from deptree.extraneous import classify
from deptree.loader import load_tree
from deptree.orchestrator import COMMANDS, RunContext, RunResult, run_command
from deptree.output import console, debug, error, header, info, operation, set_verbose, success, warning
from deptree.plan import OpKind
from deptree.progress import ProgressEvent
from deptree.registry import DirectoryRegistry
from deptree.state import load_lock, lock_data
from deptree.tree import PackageTree

app = typer.Typer(
    name='deptree',
    help='Reconcile installed package trees with their manifest',
    context_settings={
        'help_option_names': ['--help', '-h'],
    },
)


def version_callback(value: bool):
    if value:
        typer.echo(f'deptree {__version__}')
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, '--version', '-V', callback=version_callback, is_eager=True, help='Show version'
    ),
    verbose: bool = typer.Option(False, '--verbose', '-v', help='Show progress of every stage'),
):
    """Reconcile installed package trees with their manifest."""
    set_verbose(verbose)


def show_progress(event: ProgressEvent):
    if event.kind == 'tick':
        debug(f'{event.group} [{event.completed}/{event.total}] {event.message}')
    elif event.kind == 'fail':
        debug(f'{event.group} failed: {event.message}')
    elif event.kind == 'start':
        debug(f'{event.group} started')


def parse_package(arg: str) -> tuple[str, str]:
    """Split name@spec, keeping a leading @ as part of a scoped name."""
    at = arg.rfind('@')
    if at <= 0:
        return arg, '*'
    return arg[:at], arg[at + 1:] or '*'


def build_context(
    prefix: Path,
    dry_run: bool,
    production: bool | None,
    registry: Path | None,
    jobs: int | None,
    ignore_scripts: bool | None,
    selectors: list[str] | None = None,
) -> RunContext:
    root_dir = prefix.resolve()
    config = load_config(root_dir)
    ctx = RunContext(
        root_dir=root_dir,
        selectors=list(selectors or []),
        production=bool(resolve_option(config, 'production', production, False)),
        dry_run=dry_run,
        ignore_scripts=bool(resolve_option(config, 'ignore_scripts', ignore_scripts, False)),
        jobs=get_jobs(config, jobs),
    )
    registry_dir = get_registry(config, registry, root_dir)
    if registry_dir is not None:
        directory = DirectoryRegistry(registry_dir)
        ctx.resolver = directory
        ctx.fetcher = directory
    ctx.progress.attach(show_progress)
    return ctx


def print_result(result: RunResult):
    """Print the operations of a run consistently."""
    groups = [
        (OpKind.ADD, 'Adding:'),
        (OpKind.UPDATE, 'Updating:'),
        (OpKind.MOVE, 'Moving:'),
        (OpKind.REMOVE, 'Removing:'),
    ]
    for kind, title in groups:
        ops = [op for op in result.operations if op.kind is kind]
        if ops:
            header(title)
            for op in ops:
                operation(kind.value, str(op))

    summary = result.summary
    if summary.empty:
        info('Packages in sync')
        return

    info('')
    info(
        f'{len(summary.added)} added, {len(summary.updated)} updated, '
        f'{len(summary.moved)} moved, {len(summary.removed)} removed'
    )


def execute(name: str, ctx: RunContext):
    try:
        result = run_command(COMMANDS[name], ctx)
    except DeptreeError as e:
        error(f'{e.kind}: {e}')
        raise typer.Exit(1)

    print_result(result)
    if ctx.dry_run:
        warning('Dry run - no changes made')
    else:
        success(f'{name.capitalize()} complete')


@app.command()
def install(
    packages: list[str] = typer.Argument(None, help='Package(s) to add, as name or name@spec'),
    save_dev: bool = typer.Option(False, '--save-dev', '-D', help='Add packages as dev dependencies'),
    prefix: Path = typer.Option(Path('.'), '--prefix', '-C', help='Project root'),
    dry_run: bool = typer.Option(False, '--dry-run', '-n', help='Show what would be done'),
    production: bool | None = typer.Option(None, '--production/--no-production', help='Skip dev dependencies'),
    registry: Path | None = typer.Option(None, '--registry', help='Registry directory'),
    jobs: int | None = typer.Option(None, '--jobs', '-j', help='Parallel actions per step'),
    ignore_scripts: bool | None = typer.Option(None, '--ignore-scripts/--run-scripts', help='Skip lifecycle scripts'),
):
    """Install the dependencies of a project, adding any named packages to it."""
    ctx = build_context(prefix, dry_run, production, registry, jobs, ignore_scripts)
    ctx.additions = dict(parse_package(p) for p in packages or [])
    ctx.save_dev = save_dev
    execute('install', ctx)


@app.command()
def update(
    packages: list[str] = typer.Argument(None, help='Dependencies to update (default: all)'),
    prefix: Path = typer.Option(Path('.'), '--prefix', '-C', help='Project root'),
    dry_run: bool = typer.Option(False, '--dry-run', '-n', help='Show what would be done'),
    production: bool | None = typer.Option(None, '--production/--no-production', help='Skip dev dependencies'),
    registry: Path | None = typer.Option(None, '--registry', help='Registry directory'),
    jobs: int | None = typer.Option(None, '--jobs', '-j', help='Parallel actions per step'),
    ignore_scripts: bool | None = typer.Option(None, '--ignore-scripts/--run-scripts', help='Skip lifecycle scripts'),
):
    """Resolve dependencies afresh and move to the newest matching versions."""
    ctx = build_context(prefix, dry_run, production, registry, jobs, ignore_scripts, packages)
    execute('update', ctx)


@app.command()
def prune(
    packages: list[str] = typer.Argument(None, help='Top-level package(s) to prune (default: all extraneous)'),
    prefix: Path = typer.Option(Path('.'), '--prefix', '-C', help='Project root'),
    dry_run: bool = typer.Option(False, '--dry-run', '-n', help='Show what would be done'),
    production: bool | None = typer.Option(None, '--production/--no-production', help='Also remove dev dependencies'),
    jobs: int | None = typer.Option(None, '--jobs', '-j', help='Parallel actions per step'),
):
    """Remove extraneous packages."""
    ctx = build_context(prefix, dry_run, production, None, jobs, True, packages)
    execute('prune', ctx)


def render_tree(tree: PackageTree) -> Tree:
    def label(index: int) -> str:
        node = tree[index]
        text = str(node)
        if node.extraneous:
            text += ' [red]extraneous[/red]'
        elif node.dev:
            text += ' [dim]dev[/dim]'
        elif node.optional:
            text += ' [dim]optional[/dim]'
        if node.missing:
            text += f' [yellow]missing: {", ".join(sorted(node.missing))}[/yellow]'
        return text

    def grow(branch: Tree, index: int):
        for child in tree.children(index):
            grow(branch.add(label(child.index)), child.index)

    rendered = Tree(label(tree.root_index))
    grow(rendered, tree.root_index)
    return rendered


@app.command('ls')
def list_packages(
    prefix: Path = typer.Option(Path('.'), '--prefix', '-C', help='Project root'),
    production: bool = typer.Option(False, '--production', help='Treat dev dependencies as extraneous'),
):
    """Show the installed tree."""
    try:
        tree = load_tree(prefix.resolve())
    except DeptreeError as e:
        error(f'{e.kind}: {e}')
        raise typer.Exit(1)

    extraneous = classify(tree, production)
    console.print(render_tree(tree))

    lock = load_lock(tree.root_dir)
    if lock and lock != lock_data(tree):
        warning('Lockfile does not match the installed tree')
    if extraneous:
        warning(f'{len(extraneous)} extraneous package(s), run "deptree prune" to remove them')


def main():
    app()


if __name__ == '__main__':
    main()
