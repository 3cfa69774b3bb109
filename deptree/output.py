from rich.console import Console
from rich.theme import Theme

THEME = Theme(
    {
        'ok': 'green',
        'warn': 'yellow',
        'fail': 'bold red',
        'muted': 'dim',
        'op.add': 'green',
        'op.remove': 'red',
        'op.update': 'cyan',
        'op.move': 'blue',
    }
)

console = Console(theme=THEME, highlight=False)
err_console = Console(theme=THEME, highlight=False, stderr=True)

# Marker printed in front of an operation, keyed by OpKind value
MARKERS = {'add': '+', 'remove': '-', 'update': '~', 'move': '>'}

_verbose = False


def set_verbose(enabled: bool):
    global _verbose
    _verbose = enabled


def debug(msg: str):
    if _verbose:
        console.print(msg, style='muted')


def info(msg: str):
    console.print(msg)


def success(msg: str):
    console.print(f'[ok]✓[/ok] {msg}')


def warning(msg: str):
    console.print(f'[warn]![/warn] {msg}')


def error(msg: str):
    err_console.print(f'[fail]✗[/fail] {msg}')


def operation(kind: str, msg: str):
    """One line of a run report, e.g. `  + A@1.0.0 (A)`."""
    console.print(f'  {MARKERS[kind]} {msg}', style=f'op.{kind}')


def header(msg: str):
    console.print()
    console.print(msg, style='bold')
