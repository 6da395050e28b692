"""User interaction abstraction for interactive and unattended runs.

Commands that must pick one candidate out of several (a frontend IP, a
backend pool, a storage account) or confirm a destructive action go through
an ``InteractionHandler``. The CLI uses click prompts; scheduled runs use
``AutoInteractionHandler`` which never blocks on input; tests use
``MockInteractionHandler``.

Example:
    >>> handler = AutoInteractionHandler()
    >>> handler.select("Select frontend:", [("fe-1", "10.0.0.4")])
    0

    Testing example:
    >>> test_handler = MockInteractionHandler(choice_responses=[1], confirm_responses=[True])
    >>> test_handler.select("Select:", [("a", "opt a"), ("b", "opt b")])
    1
"""

from typing import Protocol, runtime_checkable

import click


class SelectionError(Exception):
    """Raised when a selection cannot be made without user input."""

    pass


@runtime_checkable
class InteractionHandler(Protocol):
    """Protocol for user interaction.

    Candidates are ``(label, description)`` tuples.
    """

    def select(self, message: str, candidates: list[tuple[str, str]]) -> int:
        """Return the zero-based index of the selected candidate.

        Raises:
            ValueError: If candidates is empty
            SelectionError: If no selection can be made
        """
        ...

    def confirm(self, message: str, default: bool = False) -> bool:
        """Prompt for yes/no confirmation."""
        ...

    def show_warning(self, message: str) -> None:
        """Display a warning message."""
        ...

    def show_info(self, message: str) -> None:
        """Display an informational message."""
        ...


class CLIInteractionHandler:
    """Click-based interactive handler."""

    def select(self, message: str, candidates: list[tuple[str, str]]) -> int:
        """Prompt with a numbered list until a valid number is entered.

        Raises:
            ValueError: If candidates is empty
            click.Abort: If user cancels (Ctrl+C)
        """
        if not candidates:
            raise ValueError("candidates cannot be empty")
        if len(candidates) == 1:
            return 0

        click.echo()
        click.secho(message, fg="green", bold=True)
        for i, (label, description) in enumerate(candidates, 1):
            suffix = f" - {description}" if description else ""
            click.echo(f"  {click.style(str(i), fg='cyan')}. {label}{suffix}")
        click.echo()

        while True:
            try:
                choice_num = click.prompt("Enter choice", type=int, show_default=False)
            except (KeyboardInterrupt, click.Abort):
                click.echo()
                raise click.Abort() from None

            if 1 <= choice_num <= len(candidates):
                return choice_num - 1
            click.secho(f"Please enter a number between 1 and {len(candidates)}", fg="red")

    def confirm(self, message: str, default: bool = False) -> bool:
        return click.confirm(click.style(message, fg="yellow"), default=default)

    def show_warning(self, message: str) -> None:
        click.secho(f"Warning: {message}", fg="yellow", err=True)

    def show_info(self, message: str) -> None:
        click.secho(message, fg="green")


class AutoInteractionHandler:
    """Non-interactive handler for scheduled runs.

    Selects only when there is exactly one candidate (or a preferred label
    matches); confirmations return ``assume_yes``.
    """

    def __init__(self, assume_yes: bool = False, preferred: str | None = None):
        self.assume_yes = assume_yes
        self.preferred = preferred

    def select(self, message: str, candidates: list[tuple[str, str]]) -> int:
        if not candidates:
            raise ValueError("candidates cannot be empty")
        if self.preferred is not None:
            for i, (label, _) in enumerate(candidates):
                if label == self.preferred:
                    return i
        if len(candidates) == 1:
            return 0
        labels = ", ".join(label for label, _ in candidates)
        raise SelectionError(f"{message} Multiple candidates found ({labels}); specify one explicitly.")

    def confirm(self, message: str, default: bool = False) -> bool:
        return self.assume_yes

    def show_warning(self, message: str) -> None:
        click.secho(f"Warning: {message}", fg="yellow", err=True)

    def show_info(self, message: str) -> None:
        click.echo(message)


class MockInteractionHandler:
    """Mock interaction handler for testing with pre-programmed responses.

    Tracks all interactions for verification in tests.
    """

    def __init__(
        self,
        choice_responses: list[int] | None = None,
        confirm_responses: list[bool] | None = None,
    ):
        self.choice_responses = choice_responses or []
        self.confirm_responses = confirm_responses or []
        self.interactions: list[dict] = []
        self._choice_index = 0
        self._confirm_index = 0

    def select(self, message: str, candidates: list[tuple[str, str]]) -> int:
        """Return next pre-programmed choice response.

        Raises:
            ValueError: If candidates is empty or the response is out of range
            IndexError: If no more choice responses available
        """
        if not candidates:
            raise ValueError("candidates cannot be empty")
        if self._choice_index >= len(self.choice_responses):
            raise IndexError(
                f"No more choice responses available. "
                f"Provided {len(self.choice_responses)}, "
                f"needed {self._choice_index + 1}"
            )

        response = self.choice_responses[self._choice_index]
        self._choice_index += 1
        if not 0 <= response < len(candidates):
            raise ValueError(
                f"Invalid pre-programmed response {response} for {len(candidates)} candidates"
            )

        self.interactions.append(
            {"type": "choice", "message": message, "candidates": candidates, "response": response}
        )
        return response

    def confirm(self, message: str, default: bool = False) -> bool:
        """Return next pre-programmed confirmation response.

        Raises:
            IndexError: If no more confirm responses available
        """
        if self._confirm_index >= len(self.confirm_responses):
            raise IndexError(
                f"No more confirm responses available. "
                f"Provided {len(self.confirm_responses)}, "
                f"needed {self._confirm_index + 1}"
            )

        response = self.confirm_responses[self._confirm_index]
        self._confirm_index += 1
        self.interactions.append(
            {"type": "confirm", "message": message, "default": default, "response": response}
        )
        return response

    def show_warning(self, message: str) -> None:
        self.interactions.append({"type": "warning", "message": message})

    def show_info(self, message: str) -> None:
        self.interactions.append({"type": "info", "message": message})

    def get_interactions_by_type(self, interaction_type: str) -> list[dict]:
        """Get all interactions of a specific type."""
        return [i for i in self.interactions if i["type"] == interaction_type]


__all__ = [
    "AutoInteractionHandler",
    "CLIInteractionHandler",
    "InteractionHandler",
    "MockInteractionHandler",
    "SelectionError",
]
