from pathlib import Path

CONFIG_DIR = Path.home() / '.config' / 'deptree'
CONFIG_FILE = CONFIG_DIR / 'config.yaml'
PROJECT_CONFIG_NAME = '.deptree.yaml'

MANIFEST_NAME = 'package.yaml'
MODULES_DIR_NAME = 'modules'
LOCKFILE_NAME = 'deptree-lock.yaml'

DEFAULT_JOBS = 4
LIFECYCLE_EVENTS = ['preinstall', 'install', 'postinstall']
