"""Options passed to optimizers, and the rules for merging them."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final, Self

from pydantic import BaseModel, ConfigDict, Field, NonNegativeFloat, PositiveInt

from optbridge.enums import ConflictPolicy
from optbridge.exceptions import OptionConflict

if TYPE_CHECKING:
    from collections.abc import Mapping

_logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS: Final = 1000
"""The iteration budget used when the driver is not given one."""

RESERVED_OPTIONS: Final = frozenset({"max_iterations", "tolerance"})
"""Option keys owned by the driver."""

_RESERVED_ALIASES: Final = {"maxiter": "max_iterations", "tol": "tolerance"}


class OptimizerOptions(BaseModel):
    """Options of an optimizer instance.

    The options of an optimizer are split in two parts: the reserved options
    that the driver controls, stored in typed fields, and any
    optimizer-specific options, stored in the `extras` dictionary. Use
    [`from_mapping`][optbridge.config.OptimizerOptions.from_mapping] to build
    an object from a flat dictionary of options.

    - **`max_iterations`**: The iteration budget. An optimizer must not record
      more loss history entries than this.
    - **`tolerance`**: The convergence tolerance. The exact meaning depends on
      the optimizer; built-in optimizers compare it to the gradient norm.

    Attributes:
        max_iterations: Maximum number of iterations (optional).
        tolerance:      Convergence tolerance (optional).
        extras:         Optimizer-specific options.
    """

    max_iterations: PositiveInt | None = None
    tolerance: NonNegativeFloat | None = None
    extras: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True, validate_default=True)

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any] | None = None) -> Self:
        """Create an options object from a flat mapping.

        Reserved keys are moved into their typed fields, all other keys are
        stored as extras.

        Args:
            options: The flat options mapping.

        Returns:
            The new options object.
        """
        extras = dict(options or {})
        reserved = {key: extras.pop(key) for key in RESERVED_OPTIONS if key in extras}
        return cls.model_validate({**reserved, "extras": extras})

    def get(self, key: str, default: Any = None) -> Any:  # noqa: ANN401
        """Return the value of an option, reserved or not.

        Args:
            key:     The option name.
            default: The value to return if the option is not set.

        Returns:
            The option value, or the default.
        """
        if key in RESERVED_OPTIONS:
            value = getattr(self, key)
            return default if value is None else value
        return self.extras.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        """Return the options as a flat dictionary.

        Reserved options that are not set are omitted.

        Returns:
            A new dictionary with all options.
        """
        reserved = {
            key: getattr(self, key)
            for key in sorted(RESERVED_OPTIONS)
            if getattr(self, key) is not None
        }
        return {**self.extras, **reserved}


def merge_options(
    instance_options: OptimizerOptions,
    driver_options: Mapping[str, Any],
    *,
    policy: ConflictPolicy = ConflictPolicy.OVERRIDE,
    default_max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> OptimizerOptions:
    """Merge the options of an optimizer instance with those of the driver.

    The driver always takes precedence:

    1. The iteration budget is taken from `driver_options`, or is set to
       `default_max_iterations`, never from the instance.
    2. The tolerance is taken from `driver_options`, or is `None` if the
       driver does not set it, never from the instance.
    3. Extra options from both sources are combined, driver values replacing
       instance values with the same key. Extra options that only the instance
       defines pass through unchanged.

    An instance value of a reserved option that differs from the final driver
    value is a conflict. The backend-native aliases `maxiter` and `tol` given
    to the driver are used as `max_iterations` and `tolerance`, unless the
    driver also sets the reserved option itself. Any other alias left among
    the extras is a conflict and is dropped from the merged extras. The
    `policy` determines whether conflicts are resolved silently, logged, or
    raised as an error.

    Args:
        instance_options:       The options of the optimizer instance.
        driver_options:         The flat options mapping passed to the driver.
        policy:                 How to handle conflicts.
        default_max_iterations: The budget used if the driver sets none.

    Returns:
        The merged options.

    Raises:
        OptionConflict: If a conflict occurs and `policy` is `ERROR`.
    """
    driver_options = dict(driver_options)
    for alias, key in _RESERVED_ALIASES.items():
        if alias in driver_options and key not in driver_options:
            _logger.debug("Using option `%s` as `%s`", alias, key)
            driver_options[key] = driver_options.pop(alias)
    driver = OptimizerOptions.from_mapping(driver_options)

    max_iterations = (
        default_max_iterations
        if driver.max_iterations is None
        else driver.max_iterations
    )
    tolerance = driver.tolerance

    for key, value in (("max_iterations", max_iterations), ("tolerance", tolerance)):
        instance_value = getattr(instance_options, key)
        if instance_value is not None and instance_value != value:
            _handle_conflict(
                key,
                f"Option `{key}` of the optimizer ({instance_value}) is "
                f"overridden by the driver ({value})",
                policy,
            )

    extras = {**instance_options.extras, **driver.extras}
    for alias, key in _RESERVED_ALIASES.items():
        if alias in extras:
            _handle_conflict(
                alias,
                f"Option `{alias}` conflicts with the reserved option `{key}` "
                "and is ignored",
                policy,
            )
            del extras[alias]

    return OptimizerOptions(
        max_iterations=max_iterations, tolerance=tolerance, extras=extras
    )


def _handle_conflict(key: str, msg: str, policy: ConflictPolicy) -> None:
    if policy == ConflictPolicy.ERROR:
        raise OptionConflict(msg, key=key)
    if policy == ConflictPolicy.WARN:
        _logger.warning(msg)
    else:
        _logger.debug(msg)
