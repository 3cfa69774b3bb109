from pathlib import Path

import yaml

from deptree.constants import CONFIG_FILE, DEFAULT_JOBS, PROJECT_CONFIG_NAME
from deptree.output import warning


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        warning(f'Ignoring {path}: expected a mapping')
        return {}
    return data


def load_config(root_dir: Path | None = None) -> dict:
    """Load user config, overlaid with the project's own config when given."""
    config = _load_yaml(CONFIG_FILE)
    if root_dir is not None:
        config.update(_load_yaml(Path(root_dir) / PROJECT_CONFIG_NAME))
    return config


def resolve_option(config: dict, key: str, override, default=None):
    """Resolve an effective setting from config and a CLI override."""
    if override is not None:
        return override
    return config.get(key, default)


def get_registry(config: dict, override: Path | None = None, root_dir: Path | None = None) -> Path | None:
    """Registry directory; relative config paths are taken from the project root."""
    registry = resolve_option(config, 'registry', override)
    if registry is None:
        return None
    path = Path(registry).expanduser()
    if not path.is_absolute() and root_dir is not None and override is None:
        path = Path(root_dir) / path
    return path


def get_jobs(config: dict, override: int | None = None) -> int:
    jobs = resolve_option(config, 'jobs', override, DEFAULT_JOBS)
    try:
        jobs = int(jobs)
    except (TypeError, ValueError):
        warning(f'Invalid jobs setting "{jobs}", using {DEFAULT_JOBS}')
        return DEFAULT_JOBS
    return max(1, jobs)
