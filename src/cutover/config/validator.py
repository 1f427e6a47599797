"""Validation utilities for Cutover configuration."""

from pydantic import ValidationError as PydanticValidationError


def flatten_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten Pydantic ValidationError into human-readable messages.

    Args:
        exc: Pydantic ValidationError exception

    Returns:
        List of human-readable error messages, one per field error

    Example:
        >>> from pydantic import BaseModel, ValidationError
        >>> class Model(BaseModel):
        ...     port: int
        >>> try:
        ...     Model(port="http")
        ... except ValidationError as e:
        ...     flatten_pydantic_errors(e)
        ["Field 'port': Input should be a valid integer, unable to parse string as an integer"]
    """
    errors: list[str] = []

    for error in exc.errors():
        loc = error.get("loc", ())
        field_path = ".".join(str(item) for item in loc) if loc else "unknown"

        msg = error.get("msg", "Unknown error")
        error_type = error.get("type", "")

        if error_type == "value_error":
            input_val = error.get("input")
            formatted = f"Field '{field_path}': {msg} (received: {input_val!r})"
        else:
            formatted = f"Field '{field_path}': {msg}"

        errors.append(formatted)

    return errors if errors else ["Validation failed with unknown error"]


def validation_message(exc: PydanticValidationError, source: str) -> str:
    """Build a single multi-line message for a failed configuration source.

    Args:
        exc: Pydantic ValidationError exception
        source: Where the configuration came from (file path or "environment")

    Returns:
        Message listing every invalid field
    """
    details = "\n".join(f"  {line}" for line in flatten_pydantic_errors(exc))
    return f"Invalid deployment configuration from {source}:\n{details}"
