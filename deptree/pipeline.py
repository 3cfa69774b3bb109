from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable

from deptree.constants import DEFAULT_JOBS
from deptree.errors import FilesystemError, PipelineAborted
from deptree.progress import ProgressGroup


@dataclass
class Action:
    """One unit of work in a step, e.g. removing a single package directory."""

    label: str
    fn: Callable[[], None]


@dataclass
class Step:
    """A group of actions that are safe to run in parallel."""

    name: str
    actions: list[Action] = field(default_factory=list)


def _invoke(action: Action):
    try:
        action.fn()
    except OSError as e:
        raise FilesystemError(f'{action.label}: {e}') from e


def run_step(step: Step, group: ProgressGroup, dry_run: bool = False, jobs: int = DEFAULT_JOBS):
    """Run every action of a step and wait for all of them to settle.

    Raises PipelineAborted for the first action that failed, once the whole
    step has finished.
    """
    group.start(len(step.actions))

    if dry_run:
        for action in step.actions:
            group.tick(f'would {action.label}')
        group.finish()
        return

    failure = None
    with ThreadPoolExecutor(max_workers=max(1, jobs), thread_name_prefix='deptree') as executor:
        futures = {executor.submit(_invoke, action): action for action in step.actions}
        for future in as_completed(futures):
            action = futures[future]
            exc = future.exception()
            if exc is None:
                group.tick(action.label)
                continue
            group.fail(f'{action.label}: {exc}')
            if failure is None:
                failure = (action, exc)

    group.finish()
    if failure is not None:
        action, exc = failure
        raise PipelineAborted(step.name, action.label, exc) from exc


def run_steps(
    steps: list[Step],
    dry_run: bool = False,
    group: ProgressGroup | None = None,
    jobs: int = DEFAULT_JOBS,
) -> int:
    """Execute steps strictly one after another. Returns the number of actions run.

    Nothing already applied is undone when a step fails.
    """
    if group is None:
        group = ProgressGroup('pipeline')

    count = 0
    for step in steps:
        run_step(step, group.new_group(step.name), dry_run, jobs)
        group.tick(step.name)
        count += len(step.actions)
    return count
