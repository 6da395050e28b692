"""Utility CLI commands.

This module provides small standalone helpers:
- Generate GUIDs
- Find files by name and content
- Convert PKCS#12 bundles to PEM
- Merge log files by timestamp
"""

import logging

import click

from opskit.click_group import OpskitGroup
from opskit.commands.cli_helpers import fail, warn
from opskit.utils import UtilityError, convert_pfx_to_pem, find_files, generate_guids, merge_logs

logger = logging.getLogger(__name__)


@click.group(name="util", cls=OpskitGroup)
def util_group():
    """Small standalone utilities.

    \b
    EXAMPLES:
        $ opskit util guid --count 3
        $ opskit util find . "*.json" --contains connectionString
        $ opskit util cert-convert client.pfx --out client.pem
        $ opskit util merge-logs app1.log app2.log --out merged.log
    """
    pass


@util_group.command(name="guid")
@click.option("--count", "-n", type=int, default=1, show_default=True)
@click.option("--upper", is_flag=True, help="Uppercase output")
def guid(count: int, upper: bool):
    """Print new random GUIDs."""
    try:
        for value in generate_guids(count, upper=upper):
            click.echo(value)
    except UtilityError as e:
        fail(str(e), e)


@util_group.command(name="find")
@click.argument("root", type=click.Path(file_okay=False))
@click.argument("pattern")
@click.option("--contains", help="Only files containing this text")
def find(root: str, pattern: str, contains: str | None):
    """Find files under ROOT whose name matches PATTERN."""
    try:
        matches = find_files(root, pattern, contains=contains)
    except UtilityError as e:
        fail(str(e), e)
    for path in matches:
        click.echo(str(path))
    logger.debug(f"{len(matches)} match(es)")


@util_group.command(name="cert-convert")
@click.argument("pfx", type=click.Path(exists=True, dir_okay=False))
@click.option("--out", "out_path", required=True, type=click.Path(dir_okay=False), help="PEM output file")
@click.option("--password", prompt=True, hide_input=True, default="", help="PFX password")
def cert_convert(pfx: str, out_path: str, password: str):
    """Convert a PKCS#12 (.pfx) bundle to PEM and report expiry."""
    try:
        summary = convert_pfx_to_pem(pfx, out_path, password=password or None)
    except UtilityError as e:
        fail(str(e), e)

    click.echo(f"✓ Wrote {out_path}")
    click.echo(f"Subject: {summary.subject}")
    click.echo(f"Expires: {summary.expiration_date.isoformat()} ({summary.days_until_expiry} days)")
    if summary.is_expired:
        warn("certificate has expired")
    elif summary.needs_warning:
        warn(f"certificate expires in {summary.days_until_expiry} days")


@util_group.command(name="merge-logs")
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--out", "out_path", type=click.Path(dir_okay=False), help="Output file (default: stdout)")
def merge_logs_command(files: tuple[str, ...], out_path: str | None):
    """Merge FILES into one log ordered by leading ISO timestamp."""
    try:
        lines = merge_logs(list(files))
    except UtilityError as e:
        fail(str(e), e)

    if out_path:
        try:
            with open(out_path, "w", encoding="utf-8") as f:
                f.write("\n".join(lines) + ("\n" if lines else ""))
        except OSError as e:
            fail(f"Failed to write {out_path}: {e}", e)
        click.echo(f"✓ Merged {len(files)} file(s), {len(lines)} line(s) into {out_path}")
    else:
        for line in lines:
            click.echo(line)
