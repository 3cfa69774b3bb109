"""
Integration tests: whole runs of install, update and prune against projects
on disk.
"""

import pytest
import yaml

from deptree.constants import LOCKFILE_NAME, MANIFEST_NAME
from deptree.errors import FilesystemError, InvalidSelector, LifecycleError, PipelineAborted
from deptree.loader import load_tree
from deptree.orchestrator import COMMANDS, INSTALL, PRUNE, UPDATE, RunContext, run_command
from deptree.plan import OpKind
from deptree.registry import DirectoryRegistry
from tests.helpers import install_at, publish, write_package


def versions_on_disk(root):
    tree = load_tree(root)
    return {'/'.join(tree.location(n.index)): n.version for n in tree.walk() if not n.is_root}


def registry_context(root, registry, **options):
    directory = DirectoryRegistry(registry)
    options.setdefault('ignore_scripts', True)
    return RunContext(root_dir=root, resolver=directory, fetcher=directory, **options)


@pytest.fixture
def published(registry):
    publish(registry, 'A', '1.0.0', dependencies={'C': '1.x'})
    publish(registry, 'C', '1.0.0')
    publish(registry, 'C', '1.1.0')
    publish(registry, 'C', '2.0.0')
    publish(registry, 'N', '1.0.0', dependencies={'C': '2.x'})
    return registry


# -----------------------------------------------------------------------------
# 1. Prune
# -----------------------------------------------------------------------------
def test_prune_removes_extraneous_packages(project):
    ctx = RunContext(root_dir=project)
    result = run_command(PRUNE, ctx)

    assert result.summary.removed == ['B@1.0.0', 'D@1.0.0']
    assert not (project / 'modules' / 'B').exists()
    assert (project / 'modules' / 'A').exists()
    assert (project / 'modules' / 'C').exists()

    lock = yaml.safe_load((project / LOCKFILE_NAME).read_text())
    assert set(lock['dependencies']) == {'A', 'C'}

    assert [group.name for group in ctx.progress.children] == [
        'loadCurrentTree', 'loadIdealTree', 'diffTrees', 'executeActions', 'runLifecycles', 'saveLockfile',
    ]
    assert [group.name for group in ctx.progress.find('loadIdealTree').children] == ['removeDeps', 'loadExtraneous']
    assert ctx.progress.find('executeActions').completed == ctx.progress.find('executeActions').total == 1


def test_second_prune_is_empty(project):
    run_command(PRUNE, RunContext(root_dir=project))
    result = run_command(PRUNE, RunContext(root_dir=project))
    assert result.summary.empty
    assert result.operations == []


def test_prune_by_name(project):
    nested = run_command(PRUNE, RunContext(root_dir=project, selectors=['D']))
    assert nested.operations == []
    assert (project / 'modules' / 'B' / 'modules' / 'D').exists()

    named = run_command(PRUNE, RunContext(root_dir=project, selectors=['B']))
    assert named.summary.removed == ['B@1.0.0', 'D@1.0.0']


def test_prune_unknown_name_fails_without_side_effects(project):
    with pytest.raises(InvalidSelector):
        run_command(PRUNE, RunContext(root_dir=project, selectors=['ghost']))
    assert (project / 'modules' / 'B').exists()
    assert not (project / LOCKFILE_NAME).exists()


def test_prune_dry_run_matches_real_run(project, tmp_path):
    dry = run_command(PRUNE, RunContext(root_dir=project, dry_run=True))

    assert (project / 'modules' / 'B' / 'modules' / 'D').exists()
    assert not (project / LOCKFILE_NAME).exists()
    assert dry.dry_run

    real = run_command(PRUNE, RunContext(root_dir=project))
    assert set(dry.operations) == set(real.operations)


def test_prune_never_runs_scripts(project):
    write_package(project, 'app', dependencies={'A': '1.0.0'}, scripts={'postinstall': 'touch ran'})
    run_command(PRUNE, RunContext(root_dir=project))
    assert not (project / 'ran').exists()


def test_production_prune(project):
    write_package(project, 'app', dependencies={'A': '1.0.0'}, dev={'B': '1.0.0'})

    assert run_command(PRUNE, RunContext(root_dir=project)).summary.empty

    result = run_command(PRUNE, RunContext(root_dir=project, production=True))
    assert result.summary.removed == ['B@1.0.0', 'D@1.0.0']


# -----------------------------------------------------------------------------
# 2. Install
# -----------------------------------------------------------------------------
def test_install_from_registry(tmp_path, published):
    root = write_package(tmp_path / 'app', 'app', dependencies={'A': '*', 'N': '*'})

    result = run_command(INSTALL, registry_context(root, published))

    assert versions_on_disk(root) == {'A': '1.0.0', 'C': '1.1.0', 'N': '1.0.0', 'N/C': '2.0.0'}
    assert sorted(result.summary.added) == ['A@1.0.0', 'C@1.1.0', 'C@2.0.0', 'N@1.0.0']
    assert (root / LOCKFILE_NAME).exists()

    again = run_command(INSTALL, registry_context(root, published))
    assert again.summary.empty


def test_install_scoped_package(tmp_path, published):
    publish(published, '@scope/util', '1.0.0', dependencies={'C': '1.x'})
    root = write_package(tmp_path / 'app', 'app', dependencies={'@scope/util': '*'})

    run_command(INSTALL, registry_context(root, published))

    assert versions_on_disk(root) == {'@scope/util': '1.0.0', 'C': '1.1.0'}
    assert (root / 'modules' / '@scope' / 'util' / MANIFEST_NAME).exists()
    assert run_command(INSTALL, registry_context(root, published)).summary.empty


def test_install_dry_run_matches_real_run(tmp_path, published):
    root = write_package(tmp_path / 'app', 'app', dependencies={'A': '*', 'N': '*'})

    dry = run_command(INSTALL, registry_context(root, published, dry_run=True))
    assert not (root / 'modules').exists()

    real = run_command(INSTALL, registry_context(root, published))
    assert set(dry.operations) == set(real.operations)


def test_install_hoists_nested_package_by_moving_it(tmp_path, published):
    root = write_package(tmp_path / 'app', 'app', dependencies={'A': '*'})
    install_at(root, ('A',), dependencies={'C': '1.x'})
    install_at(root, ('A', 'C'), '1.0.0')

    result = run_command(INSTALL, registry_context(root, published))

    assert [(op.kind, op.location, op.previous_location) for op in result.operations] == [
        (OpKind.MOVE, ('C',), ('A', 'C')),
    ]
    assert versions_on_disk(root) == {'A': '1.0.0', 'C': '1.0.0'}


def test_install_adds_named_packages_to_manifest(tmp_path, published):
    root = write_package(tmp_path / 'app', 'app', dependencies={'A': '*'})

    run_command(INSTALL, registry_context(root, published, additions={'N': '1.0.0'}, dry_run=True))
    manifest = yaml.safe_load((root / MANIFEST_NAME).read_text())
    assert manifest['dependencies'] == {'A': '*'}

    run_command(INSTALL, registry_context(root, published, additions={'N': '1.0.0'}))
    manifest = yaml.safe_load((root / MANIFEST_NAME).read_text())
    assert manifest['dependencies'] == {'A': '*', 'N': '1.0.0'}
    assert 'N' in versions_on_disk(root)


def test_install_keeps_extraneous_packages(project, published):
    result = run_command(INSTALL, registry_context(project, published))
    assert result.summary.removed == []
    assert (project / 'modules' / 'B').exists()


def test_install_runs_lifecycle_scripts(tmp_path, registry):
    publish(registry, 'S', '1.0.0', scripts={'install': 'echo built > built.txt'})
    root = write_package(tmp_path / 'app', 'app', dependencies={'S': '*'}, scripts={'postinstall': 'touch done'})

    run_command(INSTALL, registry_context(root, registry, ignore_scripts=False))

    assert (root / 'modules' / 'S' / 'built.txt').read_text().strip() == 'built'
    assert (root / 'done').exists()


def test_failing_lifecycle_script(tmp_path, registry):
    publish(registry, 'S', '1.0.0', scripts={'install': 'exit 3'})
    root = write_package(tmp_path / 'app', 'app', dependencies={'S': '*'})

    with pytest.raises(LifecycleError):
        run_command(INSTALL, registry_context(root, registry, ignore_scripts=False))
    # Installed files are not rolled back
    assert (root / 'modules' / 'S').exists()


def test_fetch_failure_aborts_and_keeps_completed_work(tmp_path, published):
    class FlakyRegistry(DirectoryRegistry):
        def fetch(self, name, version, destination):
            if name == 'N':
                raise OSError('disk full')
            super().fetch(name, version, destination)

    root = write_package(tmp_path / 'app', 'app', dependencies={'A': '*', 'N': '*'})
    flaky = FlakyRegistry(published)
    ctx = RunContext(root_dir=root, resolver=flaky, fetcher=flaky, ignore_scripts=True)

    with pytest.raises(PipelineAborted) as excinfo:
        run_command(INSTALL, ctx)

    assert isinstance(excinfo.value.cause, FilesystemError)
    assert (root / 'modules' / 'A' / MANIFEST_NAME).exists()
    assert not (root / 'modules' / 'N' / 'modules' / 'C').exists()
    assert not (root / LOCKFILE_NAME).exists()


# -----------------------------------------------------------------------------
# 3. Update
# -----------------------------------------------------------------------------
def test_update_moves_to_newest_and_keeps_nested_modules(tmp_path, registry):
    publish(registry, 'A', '1.0.0', dependencies={'C': '2.x'})
    publish(registry, 'C', '1.0.0')
    publish(registry, 'C', '2.0.0')
    root = write_package(tmp_path / 'app', 'app', dependencies={'A': '*', 'C': '1.x'})
    run_command(INSTALL, registry_context(root, registry))
    assert versions_on_disk(root) == {'A': '1.0.0', 'A/C': '2.0.0', 'C': '1.0.0'}

    publish(registry, 'A', '1.1.0', dependencies={'C': '2.x'})
    result = run_command(UPDATE, registry_context(root, registry))

    assert result.summary.updated == ['A@1.1.0']
    assert versions_on_disk(root) == {'A': '1.1.0', 'A/C': '2.0.0', 'C': '1.0.0'}


def test_update_rejects_undeclared_names(project, published):
    with pytest.raises(InvalidSelector):
        run_command(UPDATE, registry_context(project, published, selectors=['B']))


def test_commands_table():
    assert set(COMMANDS) == {'install', 'update', 'prune'}
    assert COMMANDS['prune'] is PRUNE
