"""Command line entry point: ``python -m linodeswarm <command>``.

Commands:
    hosts                       List the hosts in the record store.
    provision [--yes]           Build missing hosts, certify them, form the swarm.
    delete --select 1,3 [--yes] Delete hosts by their index in ``hosts``.
    client-cert ALIAS           Create a Docker client certificate.

Without ``--yes`` the mutating commands only print what they would do.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import os
from collections.abc import Sequence
from pathlib import Path

from loguru import logger
from rich.console import Console
from rich.table import Table

from .bootstrap.certs import make_client_cert
from .bootstrap.openssl import OpenSSL, check_ca_files, ensure_openssl
from .config import ClusterConfig, load_config
from .constants import OPERATOR_PASSPHRASE_ENV
from .errors import LinodeSwarmError, ValidationError
from .logging import LogConfig, setup_logging, teardown_logging
from .orchestrator import Orchestrator
from .provision import PlanQuote, ProvisionReport, provision_cluster
from .records import RecordStore
from .teardown import delete_hosts, parse_selection

console = Console(stderr=True)


def read_passphrase() -> str:
    """CA passphrase from the environment, else prompted without echo."""
    return os.environ.get(OPERATOR_PASSPHRASE_ENV) or getpass.getpass(
        "Enter the SSL private passphrase: "
    )


def _hosts_table(rows: Sequence[tuple[int, str, dict]], leader: str | None) -> Table:
    table = Table(title="Servers in database", title_justify="left", box=None, padding=(0, 2))
    table.add_column("#", style="bright_black", justify="right")
    table.add_column("host", style="cyan")
    table.add_column("public ip")
    table.add_column("private ip")
    table.add_column("plan")
    for index, host, record in rows:
        name = f"{host} (leader)" if host == leader else host
        table.add_row(
            str(index),
            name,
            record.get("public_ipv4", ""),
            record.get("private_ipv4", ""),
            record.get("plan_type", ""),
        )
    return table


async def _indexed_records(records: RecordStore) -> list[tuple[int, str, dict]]:
    hosts = await records.hosts()
    return [(i, host, await records.read(host)) for i, host in enumerate(hosts, start=1)]


# =============================================================================
# Commands
# =============================================================================


async def cmd_hosts(config: ClusterConfig, args: argparse.Namespace) -> int:
    records = RecordStore(config.db_dir)
    rows = await _indexed_records(records)
    if not rows:
        console.print("No servers in database.")
        return 0
    console.print(_hosts_table(rows, await records.read_leader()))
    return 0


async def cmd_provision(config: ClusterConfig, args: argparse.Namespace) -> int:
    def confirm(quotes: Sequence[PlanQuote]) -> bool:
        table = Table(title="Servers to provision", title_justify="left", box=None, padding=(0, 2))
        table.add_column("host", style="cyan")
        table.add_column("plan")
        table.add_column("per month", justify="right")
        for host, plan, price in quotes:
            table.add_row(host, plan, f"${price:.2f}")
        console.print(table)
        if not args.yes:
            console.print("Re-run with [bold]--yes[/bold] to create these Linodes.")
        return args.yes

    passphrase = None
    if config.docker_tls and args.yes:
        ensure_openssl(OpenSSL.from_env())
        passphrase = read_passphrase()

    async with Orchestrator(config) as orch:
        report = await provision_cluster(orch, confirm=confirm, passphrase=passphrase)
    _print_report(report)
    return 0


def _print_report(report: ProvisionReport) -> None:
    if report.skipped:
        console.print(f"Skipped (already exist): {', '.join(report.skipped)}")
    if report.cancelled:
        return
    if not report.built:
        console.print("There's nothing to provision!")
        return
    console.print(f"Built: {', '.join(report.built)}")
    if report.certified:
        console.print(f"TLS certified: {', '.join(report.certified)}")
    if report.swarm is not None:
        console.print(
            f"Swarm leader [bold]{report.swarm.leader}[/bold], "
            f"joined: {', '.join(report.swarm.joined) or '-'}"
        )
    console.print("[green]Finished![/green]")


async def cmd_delete(config: ClusterConfig, args: argparse.Namespace) -> int:
    records = RecordStore(config.db_dir)
    rows = await _indexed_records(records)
    if not rows:
        console.print("No servers to delete.")
        return 0

    selected = parse_selection(args.select, len(rows))
    if not selected:
        console.print("Not deleting anything. Bye.")
        return 0

    doomed = [row for row in rows if row[0] in selected]
    console.print(_hosts_table(doomed, None))
    if not args.yes:
        console.print("Re-run with [bold]--yes[/bold] to DELETE all data on these servers.")
        return 0

    async with Orchestrator(config, records=records) as orch:
        report = await delete_hosts(orch, [host for _, host, _ in doomed])
    console.print(f"Deleted: {', '.join(report.deleted)}")
    return 0


async def cmd_client_cert(config: ClusterConfig, args: argparse.Namespace) -> int:
    openssl = OpenSSL.from_env()
    _, ca_key = check_ca_files(config.cert_dir)
    passphrase = read_passphrase()
    if not await openssl.verify_passphrase(ca_key, passphrase):
        raise ValidationError("OpenSSL failed for this passphrase.")
    dest = await make_client_cert(
        openssl,
        cert_dir=config.cert_dir,
        dest_root=config.client_cert_dir,
        alias=args.alias,
        passphrase=passphrase,
    )
    console.print(f"Client certificate written to [bold]{dest}[/bold]")
    return 0


COMMANDS = {
    "hosts": cmd_hosts,
    "provision": cmd_provision,
    "delete": cmd_delete,
    "client-cert": cmd_client_cert,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linodeswarm",
        description="Provision Docker swarm clusters on Linode.",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to linodeswarm.toml.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level.",
    )
    parser.add_argument("--log-file", default=None, help="Also write DEBUG logs to this file.")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("hosts", help="List servers in the record store.")

    provision = sub.add_parser("provision", help="Provision missing servers.")
    provision.add_argument("--yes", action="store_true", help="Actually create the Linodes.")

    delete = sub.add_parser("delete", help="Delete servers by index.")
    delete.add_argument("--select", required=True, help="Comma separated indexes, e.g. 2,4,5.")
    delete.add_argument("--yes", action="store_true", help="Actually delete the servers.")

    client_cert = sub.add_parser("client-cert", help="Create a Docker client certificate.")
    client_cert.add_argument("alias", help="Directory name for the certificate (a-z, 0-9).")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logger.remove()  # the process is ours: drop loguru's default stderr sink
    handler_ids = setup_logging(LogConfig(level=args.log_level, file=args.log_file))
    try:
        config = load_config(args.config)
        return asyncio.run(COMMANDS[args.command](config, args))
    except LinodeSwarmError as e:
        console.print(f"[red]ERROR:[/red] {e}")
        return 1
    except KeyboardInterrupt:
        console.print("Interrupted.")
        return 130
    finally:
        teardown_logging(handler_ids)
