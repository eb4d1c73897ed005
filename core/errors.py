"""Error types raised by the dataset and analysis engines."""


class WorkbenchError(Exception):
    """Base class for all workbench errors."""


class EmptyDatasetError(WorkbenchError, ValueError):
    """Raised when a dataset without rows or variables is loaded."""


class PreconditionError(WorkbenchError, ValueError):
    """The data cannot structurally satisfy the requested test or step."""


class UnknownVariableError(PreconditionError):
    def __init__(self, name: str):
        super().__init__(f"Variable '{name}' not found in dataset")
        self.name = name


class VariableTypeError(PreconditionError):
    """Wrong variable type (or type combination) for the operation."""


class InsufficientDataError(PreconditionError):
    """Too few observations."""


class GroupCountError(PreconditionError):
    """Wrong number of groups or categories."""


class UnsupportedTestError(PreconditionError):
    def __init__(self, test_id: str):
        super().__init__(f"Test type {test_id} is not yet implemented")
        self.test_id = test_id


class InvalidChangeError(PreconditionError):
    """A change descriptor that cannot be applied to the current snapshot."""
