"""Enumerations used within the `optbridge` library."""

from enum import IntEnum, StrEnum


class ExitCode(IntEnum):
    """Enumerates the reasons why an optimization run terminated.

    Optimizers set their `exit_code` attribute to one of these values before
    returning from `optimize`. The driver copies it into the
    [`LossHistory`][optbridge.history.LossHistory] it returns.
    """

    UNKNOWN = 0
    "The optimizer did not report why it stopped."

    CONVERGED = 1
    "The convergence tolerance was met."

    MAX_ITERATIONS_REACHED = 2
    "The iteration budget was exhausted."

    LINE_SEARCH_FAILED = 3
    "No acceptable step was found along the search direction."

    BACKEND_STOPPED = 4
    "An external optimization library stopped without reporting convergence."


class ConflictPolicy(StrEnum):
    """Enumerates how option conflicts are handled by the driver.

    A conflict occurs when an optimizer instance carries an explicit value for
    a reserved option (`max_iterations`, `tolerance`) that differs from the
    value set by the driver, or when a backend-native alias of a reserved
    option (for instance `maxiter`) is found among the extra options. The
    driver value always takes precedence; the policy only determines whether
    that happens silently, with a warning, or not at all.
    """

    OVERRIDE = "override"
    "The driver value silently replaces the instance value."

    WARN = "warn"
    "The driver value replaces the instance value and a warning is logged."

    ERROR = "error"
    """Strict mode: raise an [`OptionConflict`][optbridge.exceptions.OptionConflict]."""
