"""Error types raised by the cost accounting engine."""


class CostAccountingError(Exception):
    """Base class for all errors raised by this package."""


class CostBasisError(CostAccountingError):
    """A cost was read from a component before its discounting pass ran."""

    def __init__(self, component_id, field_name: str, required_pass: str):
        self.component_id = component_id
        self.field_name = field_name
        self.required_pass = required_pass
        super().__init__(
            f"{field_name} is not set for {component_id}; "
            f"call {required_pass} before computing costs"
        )


class SubproblemMergeError(CostAccountingError):
    """Two subproblems reported different values for the same entry."""


class SubproblemIndexError(CostAccountingError, IndexError):
    """A period->subproblem mapping points outside the collected data."""


class SettingsError(CostAccountingError, ValueError):
    """Case settings are missing or hold invalid values."""


class RestartDataError(CostAccountingError):
    """Capacity results used for a myopic restart have an unexpected format."""
