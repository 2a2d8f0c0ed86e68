"""GitHub Actions step inputs, outputs and workflow commands."""

from __future__ import annotations

import os
import sys
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import TextIO

TRUE_VALUES = ("true", "True", "TRUE")
FALSE_VALUES = ("false", "False", "FALSE")


class InputError(Exception):
    """Raised when a step input is missing or malformed."""

    def __init__(self, message: str, code: str = "invalid_input") -> None:
        super().__init__(message)
        self.code = code


def _input_env_name(name: str) -> str:
    return f"INPUT_{name.replace(' ', '_').upper()}"


def get_input(
    name: str,
    required: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Read a step input as a stripped string.

    Raises:
        InputError: If the input is required and not supplied.
    """
    env = os.environ if environ is None else environ
    value = env.get(_input_env_name(name), "").strip()
    if required and not value:
        raise InputError(f"Input required and not supplied: {name}", code="missing_input")
    return value


def get_boolean_input(
    name: str,
    required: bool = False,
    environ: Mapping[str, str] | None = None,
) -> bool:
    """Read a step input as a YAML 1.2 core schema boolean.

    A missing optional input is False.

    Raises:
        InputError: If the input is missing (when required) or not a boolean.
    """
    value = get_input(name, required=required, environ=environ)
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES or (not value and not required):
        return False
    raise InputError(
        f"Input does not meet YAML 1.2 \"Core Schema\" specification: {name}\n"
        "Support boolean input list: `true | True | TRUE | false | False | FALSE`"
    )


def _format_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def set_output(
    name: str,
    value: object,
    environ: Mapping[str, str] | None = None,
    stream: TextIO | None = None,
) -> None:
    """Set a step output.

    Appends to the $GITHUB_OUTPUT file; falls back to the legacy
    ::set-output command when the file is not provided.
    """
    env = os.environ if environ is None else environ
    rendered = _format_value(value)
    output_file = env.get("GITHUB_OUTPUT")
    if output_file:
        with Path(output_file).open("a", encoding="utf-8") as f:
            if "\n" in rendered:
                delimiter = f"ghadelimiter_{uuid.uuid4()}"
                f.write(f"{name}<<{delimiter}\n{rendered}\n{delimiter}\n")
            else:
                f.write(f"{name}={rendered}\n")
        return
    out = stream or sys.stdout
    out.write(f"::set-output name={name}::{rendered}\n")


def _escape_data(message: str) -> str:
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def error(message: str, stream: TextIO | None = None) -> None:
    """Emit an error annotation."""
    (stream or sys.stdout).write(f"::error::{_escape_data(message)}\n")


def warning(message: str, stream: TextIO | None = None) -> None:
    """Emit a warning annotation."""
    (stream or sys.stdout).write(f"::warning::{_escape_data(message)}\n")


__all__ = [
    "InputError",
    "error",
    "get_boolean_input",
    "get_input",
    "set_output",
    "warning",
]
