"""This module defines utilities for validating optimizer options.

Optimizers accept, next to the reserved options handled by the driver, a set
of method-specific options. This module provides classes to describe the
options each method accepts. The descriptions are turned into Pydantic models
that validate option dictionaries, rejecting unknown keys and values of the
wrong type.

Classes:
    OptionsSchemaModel: Represents the option schema of an optimizer family.
    MethodSchemaModel:  Represents the schema of a single method, including its
        options and an optional documentation URL.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, HttpUrl, create_model, model_validator

T = TypeVar("T")


class OptionsSchemaModel(BaseModel):
    """Represents the option schema of an optimizer family.

    The schema maps method names to
    [`MethodSchemaModel`][optbridge.config.options.MethodSchemaModel] objects,
    each describing the options supported by one method. Method names are
    matched case-insensitively.

    Attributes:
        methods: A dictionary of method schemas, keyed by method name.

    **Example**:
    ```py
    from optbridge.config.options import OptionsSchemaModel

    schema = OptionsSchemaModel.model_validate(
        {"methods": {"gradient_descent": {"options": {"step_size": float}}}}
    )
    model = schema.get_options_model("gradient_descent")
    print(model.model_validate({"step_size": 0.1}))  # step_size=0.1
    ```
    """

    methods: dict[str, MethodSchemaModel[Any]]

    model_config = ConfigDict(extra="forbid")

    def get_options_model(self, method: str) -> type[BaseModel]:
        """Create a Pydantic model for validating the options of a method.

        All options of the method are optional. Options that are not part of
        the schema are rejected by the generated model.

        Args:
            method: The name of the method.

        Returns:
            A Pydantic model class that validates options of the method.

        Raises:
            ValueError: If the method is not part of the schema.
        """
        method_schema = next(
            (
                schema
                for name, schema in self.methods.items()
                if name.lower() == method.lower()
            ),
            None,
        )
        if method_schema is None:
            msg = f"Method `{method}` not found in schema."
            raise ValueError(msg)

        options: dict[str, Any] = {
            option: (type_ | None, None)
            for option, type_ in method_schema.options.items()
        }

        def _extra_validator(self: Any) -> Any:  # noqa: ANN401
            if self.__pydantic_extra__:
                unknown_options = ", ".join(
                    f"`{option}`" for option in self.__pydantic_extra__
                )
                msg = f"Unknown or unsupported option(s): {unknown_options}"
                raise ValueError(msg)
            return self

        validator: Callable[..., Any] = model_validator(mode="after")(_extra_validator)  # type: ignore[assignment]

        return create_model(
            "OptionsModel",
            __config__=ConfigDict(extra="allow"),
            __validators__={"_extra_validator": validator},
            **options,
        )

    def validate_options(self, method: str, options: dict[str, Any]) -> None:
        """Validate a dictionary of options for a method.

        Args:
            method:  The name of the method.
            options: The options to validate.

        Raises:
            ValidationError: If the options are invalid.
        """
        self.get_options_model(method).model_validate(options)


class MethodSchemaModel(BaseModel, Generic[T]):
    """Represents the schema for a single optimization method.

    Attributes:
        options: A dictionary mapping option names to their types.
        url:     An optional URL documenting the method.
    """

    options: dict[str, T]
    url: HttpUrl | None = None

    model_config = ConfigDict(extra="forbid")
