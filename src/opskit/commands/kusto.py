"""Kusto CLI commands.

This module provides commands for querying Azure Data Explorer:
- Run KQL queries
- Run management commands
- Show which credential source the authentication chain picks
"""

import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
from rich.console import Console

from opskit.auth_models import KustoAuthOptions
from opskit.authentication_chain import AuthenticationChain, AuthenticationChainError
from opskit.click_group import OpskitGroup
from opskit.commands.cli_helpers import fail, load_config
from opskit.config_manager import OpskitConfig
from opskit.kusto_client import KustoClient, KustoError, normalize_cluster_url
from opskit.log_sanitizer import LogSanitizer
from opskit.result_table import ResultTable
from opskit.token_claims import token_upn

logger = logging.getLogger(__name__)


def connection_options(func: Callable) -> Callable:
    """Cluster and authentication options shared by kusto commands."""
    options = [
        click.option("--cluster", help="Cluster name, host or URL (default: config kusto_cluster)"),
        click.option("--database", "--db", help="Database (default: config kusto_database)"),
        click.option("--tenant", "tenant_id", help="Expected tenant ID"),
        click.option("--client-id", help="Service principal client ID"),
        click.option(
            "--client-secret",
            envvar="OPSKIT_CLIENT_SECRET",
            help="Service principal secret (or OPSKIT_CLIENT_SECRET)",
        ),
        click.option("--msi-client-id", help="User-assigned managed identity client ID"),
        click.option("--expected-upn", help="Reject tokens issued to any other account"),
        click.option("--no-sdk", is_flag=True, help="Skip SDK credentials; use interactive login"),
        click.option(
            "--no-interactive", is_flag=True, help="Never fall back to interactive login"
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def output_options(func: Callable) -> Callable:
    options = [
        click.option(
            "--keep-empty-columns", is_flag=True, help="Do not drop columns that are empty in every row"
        ),
        click.option("--no-dedupe", is_flag=True, help="Do not rename duplicate column names"),
        click.option(
            "--output",
            "-o",
            "output_format",
            type=click.Choice(["table", "csv", "json"]),
            default="table",
            help="Output format (default: table)",
        ),
        click.option("--out", "out_file", type=click.Path(dir_okay=False), help="Write to file"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_auth_options(config: OpskitConfig, params: dict[str, Any]) -> KustoAuthOptions:
    """Combine CLI values with config defaults."""
    return KustoAuthOptions(
        tenant_id=params.get("tenant_id") or config.tenant_id,
        client_id=params.get("client_id"),
        client_secret=params.get("client_secret"),
        managed_identity_client_id=params.get("msi_client_id"),
        expected_upn=params.get("expected_upn") or config.expected_upn,
        use_sdk=not params.get("no_sdk"),
        allow_interactive=not params.get("no_interactive"),
    )


def _client(ctx: click.Context, params: dict[str, Any]) -> tuple[KustoClient, OpskitConfig]:
    config = load_config(ctx)
    cluster = params.get("cluster") or config.kusto_cluster
    if not cluster:
        fail("Cluster required. Use --cluster or set kusto_cluster in config.")
    try:
        auth = build_auth_options(config, params)
    except ValueError as e:
        fail(str(e), e)
    database = params.get("database") or config.kusto_database
    return KustoClient(cluster, database=database, auth=auth), config


def _read_text(text: str | None, file: str | None, what: str) -> str:
    if file:
        return Path(file).read_text(encoding="utf-8")
    if text == "-":
        return sys.stdin.read()
    if not text:
        fail(f"Provide the {what} as an argument, '-' for stdin, or with --file.")
    return text


def emit_table(table: ResultTable, output_format: str, out_file: str | None) -> None:
    """Render a result table to stdout or a file."""
    if output_format == "table" and not out_file:
        if not table.columns:
            click.echo("(no columns)")
        Console().print(table.to_rich())
        click.echo(f"{len(table)} row(s)")
        return

    if out_file:
        with open(out_file, "w", newline="", encoding="utf-8") as f:
            if output_format == "json":
                table.write_json(f)
            else:
                table.write_csv(f)
        click.echo(f"Wrote {len(table)} row(s) to {out_file}")
        return

    stream = click.get_text_stream("stdout")
    if output_format == "json":
        table.write_json(stream)
    else:
        table.write_csv(stream)


def _run(ctx: click.Context, params: dict[str, Any], execute: Callable[[KustoClient, bool, bool], ResultTable]) -> None:
    client, config = _client(ctx, params)
    remove_empty = config.remove_empty_columns and not params.get("keep_empty_columns")
    dedupe = config.dedupe_columns and not params.get("no_dedupe")
    try:
        table = execute(client, remove_empty, dedupe)
    except AuthenticationChainError as e:
        fail(LogSanitizer.sanitize(str(e)), e)
    except KustoError as e:
        if e.payload:
            logger.debug(f"Kusto error payload: {e.payload}")
            click.echo(f"{e.payload}", err=True)
        fail(str(e), e)

    try:
        emit_table(table, params["output_format"], params.get("out_file"))
    except OSError as e:
        fail(f"Failed to write output: {e}", e)


@click.group(name="kusto", cls=OpskitGroup)
def kusto_group():
    """Query Azure Data Explorer (Kusto).

    Credentials are tried in order: service principal, managed identity,
    platform managed identity, Azure CLI, then interactive login. Tokens
    issued for another tenant or account are rejected.

    \b
    EXAMPLES:
        $ opskit kusto query "StormEvents | take 10" --cluster help --db Samples
        $ opskit kusto query --file report.kql -o csv --out report.csv
        $ opskit kusto mgmt ".show tables" --db Samples
        $ opskit kusto whoami --cluster help
    """
    pass


@kusto_group.command(name="query")
@click.argument("text", required=False)
@click.option("--file", "-f", type=click.Path(exists=True, dir_okay=False), help="Read query from file")
@connection_options
@output_options
@click.pass_context
def query(ctx: click.Context, text: str | None, file: str | None, **params: Any):
    """Run a KQL query."""
    kql = _read_text(text, file, "query")
    _run(ctx, params, lambda client, remove_empty, dedupe: client.query(
        kql, remove_empty=remove_empty, dedupe=dedupe
    ))


@kusto_group.command(name="mgmt")
@click.argument("command", required=False)
@click.option("--file", "-f", type=click.Path(exists=True, dir_okay=False), help="Read command from file")
@connection_options
@output_options
@click.pass_context
def mgmt(ctx: click.Context, command: str | None, file: str | None, **params: Any):
    """Run a management command such as '.show tables'."""
    csl = _read_text(command, file, "command")
    if not csl.lstrip().startswith("."):
        fail("Management commands start with '.' (for example '.show tables').")
    _run(ctx, params, lambda client, remove_empty, dedupe: client.execute_mgmt(
        csl, remove_empty=remove_empty, dedupe=dedupe
    ))


@kusto_group.command(name="whoami")
@connection_options
@click.pass_context
def whoami(ctx: click.Context, **params: Any):
    """Authenticate and show which credential source was used."""
    config = load_config(ctx)
    cluster = params.get("cluster") or config.kusto_cluster
    if not cluster:
        fail("Cluster required. Use --cluster or set kusto_cluster in config.")
    try:
        auth = build_auth_options(config, params)
    except ValueError as e:
        fail(str(e), e)

    result = AuthenticationChain(auth, normalize_cluster_url(cluster)).authenticate()
    for attempt in result.attempts:
        click.secho(f"  skipped: {attempt}", fg="yellow", err=True)
    if not result.success or result.token is None:
        fail(f"Authentication failed: {result.error}")

    claims = result.token.claims
    click.echo(f"Method:  {result.method.value if result.method else 'unknown'}")
    click.echo(f"Account: {token_upn(claims) or claims.get('appid') or 'unknown'}")
    click.echo(f"Tenant:  {claims.get('tid', 'unknown')}")
    click.echo(f"Expires in: {int(result.token.seconds_remaining() // 60)} min")
