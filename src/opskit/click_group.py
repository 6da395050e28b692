"""Click group used by every opskit command group.

Usage mistakes (a missing argument, a bad option value, a mistyped
sub-command) print a one-line ``Error:`` message on stderr followed by the
help of the command that was being run, instead of click's bare usage line.
"""

import difflib
from typing import Any, NoReturn

import click


def _exit_with_help(ctx: click.Context, message: str, exit_code: int = 1) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    click.echo("")
    click.echo(ctx.get_help())
    ctx.exit(exit_code)


class OpskitGroup(click.Group):
    """Group that answers usage errors with the failing command's help."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except click.UsageError as e:
            # BadParameter and MissingParameter are UsageErrors too
            _exit_with_help(e.ctx or ctx, e.format_message(), e.exit_code)

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError:
            name = args[0]
            if name.startswith("-"):
                raise
            message = f"No such command '{name}'."
            close = difflib.get_close_matches(name, self.list_commands(ctx), n=1)
            if close:
                message += f" Did you mean '{close[0]}'?"
            _exit_with_help(ctx, message)


# Nested groups created with @group.group() inherit the same behaviour
OpskitGroup.group_class = OpskitGroup
