from dataclasses import dataclass
from typing import Callable


@dataclass
class ProgressEvent:
    """One observable change in a progress group."""

    group: str
    kind: str
    message: str = ''
    completed: int = 0
    total: int = 0


Observer = Callable[[ProgressEvent], None]


class ProgressGroup:
    """Named node in a hierarchy of progress groups mirroring the run's stages.

    Groups only count and forward events to the observer attached at the
    top of the hierarchy; nothing in a run reads them back to make decisions.
    """

    def __init__(self, name: str, parent: 'ProgressGroup | None' = None, observer: Observer | None = None):
        self.name = name
        self.parent = parent
        self.children: list[ProgressGroup] = []
        self.completed = 0
        self.total = 0
        self.failures: list[str] = []
        self.finished = False
        self._observer = observer

    @property
    def path(self) -> str:
        if self.parent is None:
            return self.name
        return f'{self.parent.path}.{self.name}'

    @property
    def observer(self) -> Observer | None:
        if self.parent is None:
            return self._observer
        return self.parent.observer

    def attach(self, observer: Observer | None):
        self._observer = observer

    def new_group(self, name: str) -> 'ProgressGroup':
        group = ProgressGroup(name, parent=self)
        self.children.append(group)
        return group

    def find(self, path: str) -> 'ProgressGroup | None':
        """Look up a descendant by dotted path relative to this group."""
        group = self
        for name in path.split('.'):
            group = next((child for child in group.children if child.name == name), None)
            if group is None:
                return None
        return group

    def start(self, total: int = 0):
        self.total = total
        self._emit('start')

    def tick(self, message: str = ''):
        self.completed += 1
        self._emit('tick', message)

    def fail(self, message: str):
        self.failures.append(message)
        self._emit('fail', message)

    def finish(self):
        self.finished = True
        self._emit('finish')

    def _emit(self, kind: str, message: str = ''):
        observer = self.observer
        if observer is not None:
            observer(ProgressEvent(self.path, kind, message, self.completed, self.total))

    def messages(self) -> list[str]:
        return [f'{self.path}: {self.completed}/{self.total}'] + [
            line for child in self.children for line in child.messages()
        ]
