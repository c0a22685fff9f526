"""
Exception hierarchy for momentum-based control
"""


class MomentumControlError(Exception):
    """Base class for all errors raised by this package"""


class FrameMismatchError(MomentumControlError, ValueError):
    """Two frame-tagged quantities were combined in different frames"""

    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Frame mismatch: expected {expected}, got {actual}")


class DimensionMismatchError(MomentumControlError, ValueError):
    """A vector does not have the length its consumer requires"""

    def __init__(self, expected: int, actual: int, what: str = "vector"):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {what} of length {expected}, got {actual}")


class ConfigurationError(MomentumControlError):
    """Structural misconfiguration detected at construction or add time"""


class SolveFailure(MomentumControlError, RuntimeError):
    """The QP could not be solved (infeasible or numerically degenerate)"""

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"QP solve failed with status '{status}'")


class TrajectoryDomainError(MomentumControlError, ValueError):
    """A trajectory was evaluated outside of its fitted interval"""

    def __init__(self, t: float, t_start: float, t_end: float):
        self.t = t
        super().__init__(f"Trajectory evaluated at {t} outside of range [{t_start}, {t_end}]")
