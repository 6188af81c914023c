import logging

import pytest
from pydantic import ValidationError

from optbridge.config import (
    DEFAULT_MAX_ITERATIONS,
    OptimizerOptions,
    OptionsSchemaModel,
    merge_options,
)
from optbridge.enums import ConflictPolicy
from optbridge.exceptions import OptionConflict


def test_options_from_mapping() -> None:
    options = OptimizerOptions.from_mapping(
        {"max_iterations": 10, "tolerance": 1e-6, "step_size": 0.1}
    )
    assert options.max_iterations == 10
    assert options.tolerance == 1e-6
    assert options.extras == {"step_size": 0.1}
    assert options.get("max_iterations") == 10
    assert options.get("step_size") == 0.1
    assert options.get("momentum", 0.5) == 0.5
    assert options.to_dict() == {
        "max_iterations": 10,
        "tolerance": 1e-6,
        "step_size": 0.1,
    }


def test_options_defaults() -> None:
    options = OptimizerOptions.from_mapping(None)
    assert options.max_iterations is None
    assert options.tolerance is None
    assert options.get("tolerance", 1.0) == 1.0
    assert options.to_dict() == {}


@pytest.mark.parametrize(
    ("key", "value"), [("max_iterations", 0), ("max_iterations", -1), ("tolerance", -1.0)]
)
def test_options_invalid(key: str, value: float) -> None:
    with pytest.raises(ValidationError):
        OptimizerOptions.from_mapping({key: value})


def test_options_frozen() -> None:
    options = OptimizerOptions.from_mapping({"max_iterations": 10})
    with pytest.raises(ValidationError):
        options.max_iterations = 20  # type: ignore[misc]


def test_merge_driver_budget_wins() -> None:
    instance = OptimizerOptions.from_mapping({"max_iterations": 1000})
    merged = merge_options(instance, {"max_iterations": 5})
    assert merged.max_iterations == 5


def test_merge_default_budget() -> None:
    instance = OptimizerOptions.from_mapping({"max_iterations": 20})
    assert merge_options(instance, {}).max_iterations == DEFAULT_MAX_ITERATIONS
    assert merge_options(instance, {}, default_max_iterations=7).max_iterations == 7


def test_merge_tolerance() -> None:
    instance = OptimizerOptions.from_mapping({"tolerance": 1e-3})
    assert merge_options(instance, {}).tolerance is None
    assert merge_options(instance, {"tolerance": 1e-8}).tolerance == 1e-8
    assert merge_options(OptimizerOptions(), {}).tolerance is None


def test_merge_extras() -> None:
    instance = OptimizerOptions.from_mapping({"step_size": 0.1, "momentum": 0.9})
    merged = merge_options(instance, {"step_size": 0.5, "disp": False})
    assert merged.extras == {"step_size": 0.5, "momentum": 0.9, "disp": False}


@pytest.mark.parametrize("alias", ["maxiter", "tol"])
def test_merge_drops_aliases(alias: str) -> None:
    instance = OptimizerOptions.from_mapping({alias: 3})
    merged = merge_options(instance, {"max_iterations": 5})
    assert alias not in merged.extras
    assert merged.max_iterations == 5

    merged = merge_options(
        OptimizerOptions(), {alias: 3, "max_iterations": 5, "tolerance": 0.5}
    )
    assert alias not in merged.extras
    assert merged.max_iterations == 5
    assert merged.tolerance == 0.5


def test_merge_maps_driver_aliases() -> None:
    merged = merge_options(
        OptimizerOptions(), {"maxiter": 5, "tol": 0.1}, policy=ConflictPolicy.ERROR
    )
    assert merged.max_iterations == 5
    assert merged.tolerance == 0.1
    assert merged.extras == {}


def test_merge_conflict_error() -> None:
    instance = OptimizerOptions.from_mapping({"max_iterations": 1000})
    with pytest.raises(OptionConflict, match="overridden by the driver") as exc_info:
        merge_options(instance, {"max_iterations": 5}, policy=ConflictPolicy.ERROR)
    assert exc_info.value.key == "max_iterations"

    instance = OptimizerOptions.from_mapping({"tolerance": 1e-3})
    with pytest.raises(OptionConflict) as exc_info:
        merge_options(instance, {"tolerance": 1e-4}, policy=ConflictPolicy.ERROR)
    assert exc_info.value.key == "tolerance"

    with pytest.raises(OptionConflict, match="`maxiter`") as exc_info:
        merge_options(
            OptimizerOptions.from_mapping({"maxiter": 10}),
            {},
            policy=ConflictPolicy.ERROR,
        )
    assert exc_info.value.key == "maxiter"

    instance = OptimizerOptions.from_mapping({"tolerance": 1e-3})
    with pytest.raises(OptionConflict, match=r"\(None\)") as exc_info:
        merge_options(instance, {}, policy=ConflictPolicy.ERROR)
    assert exc_info.value.key == "tolerance"


def test_merge_no_conflict_on_equal_values() -> None:
    instance = OptimizerOptions.from_mapping({"max_iterations": 5, "tolerance": 0.1})
    merged = merge_options(
        instance,
        {"max_iterations": 5, "tolerance": 0.1},
        policy=ConflictPolicy.ERROR,
    )
    assert merged.max_iterations == 5
    assert merged.tolerance == 0.1

    merged = merge_options(
        OptimizerOptions.from_mapping({"step_size": 0.1}),
        {"max_iterations": 5},
        policy=ConflictPolicy.ERROR,
    )
    assert merged.tolerance is None
    assert merged.extras == {"step_size": 0.1}


def test_merge_conflict_warn(caplog: pytest.LogCaptureFixture) -> None:
    instance = OptimizerOptions.from_mapping({"max_iterations": 1000})
    with caplog.at_level(logging.WARNING, logger="optbridge"):
        merged = merge_options(
            instance, {"max_iterations": 5}, policy=ConflictPolicy.WARN
        )
    assert merged.max_iterations == 5
    assert "overridden by the driver" in caplog.text


def test_merge_conflict_override_is_silent(caplog: pytest.LogCaptureFixture) -> None:
    instance = OptimizerOptions.from_mapping({"max_iterations": 1000})
    with caplog.at_level(logging.WARNING, logger="optbridge"):
        merge_options(instance, {"max_iterations": 5})
    assert not caplog.records


def test_options_schema() -> None:
    schema = OptionsSchemaModel.model_validate(
        {
            "methods": {
                "Method": {
                    "options": {"a": int, "b": str},
                    "url": "https://example.org",
                },
            },
        }
    )
    schema.validate_options("method", {"a": 1})
    schema.validate_options("METHOD", {"b": "foo"})
    with pytest.raises(ValidationError, match="Input should be a valid integer"):
        schema.validate_options("method", {"a": "foo"})
    with pytest.raises(
        ValidationError, match=r"Unknown or unsupported option\(s\): `c`"
    ):
        schema.validate_options("method", {"c": 1})
    with pytest.raises(ValueError, match="Method `other` not found in schema."):
        schema.validate_options("other", {})


def test_options_schema_invalid_url() -> None:
    with pytest.raises(ValidationError):
        OptionsSchemaModel.model_validate(
            {"methods": {"method": {"options": {}, "url": "not a url"}}}
        )
