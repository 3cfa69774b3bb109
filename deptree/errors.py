class DeptreeError(Exception):
    """Base class for every failure a run can report."""

    kind = 'DeptreeError'


class ManifestError(DeptreeError):
    """A package.yaml is missing or malformed."""

    kind = 'ManifestError'


class ResolutionConflict(DeptreeError):
    """A version constraint cannot be satisfied while building the ideal tree."""

    kind = 'ResolutionConflict'


class InvalidSelector(DeptreeError):
    """A package named on the command line does not exist in the current tree."""

    kind = 'InvalidSelector'


class FilesystemError(DeptreeError):
    """An I/O failure while applying operations."""

    kind = 'FilesystemError'


class LifecycleError(DeptreeError):
    """A lifecycle script exited non-zero."""

    kind = 'LifecycleError'


class PipelineAborted(DeptreeError):
    """The first failing action of a pipeline, as it propagates out of the executor."""

    kind = 'PipelineAborted'

    def __init__(self, step: str, action: str, cause: BaseException):
        self.step = step
        self.action = action
        self.cause = cause
        super().__init__(f'{step}: {action} failed: {cause}')
