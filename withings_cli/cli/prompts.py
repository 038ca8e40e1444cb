"""Line prompt and confirmation, gated on a TTY and --no-input."""

import sys

import click

from ..oauth.exceptions import InputRequiredError


def stdin_is_tty() -> bool:
    return sys.stdin.isatty()


def read_line(prompt: str, no_input: bool) -> str:
    """
    Prompt on stderr and read one line from stdin.

    Raises:
        InputRequiredError: If prompting is disabled or stdin is not a TTY
    """
    if no_input or not stdin_is_tty():
        raise InputRequiredError()
    answer = click.prompt(
        prompt,
        default="",
        show_default=False,
        prompt_suffix="",
        err=True,
    )
    return answer.strip()


def confirm(prompt: str, no_input: bool) -> bool:
    """Yes/no question; only "y" or "yes" count as yes."""
    answer = read_line(prompt, no_input).lower()
    return answer in ("y", "yes")
