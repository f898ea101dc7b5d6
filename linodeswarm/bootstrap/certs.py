"""Docker TLS certificate bootstrap.

For each host the server key and CSR are generated on the operator's
machine and signed against the local CA, so the CA key never leaves it.
Only the server key, the signed certificate and ``ca.pem`` are uploaded,
after which the Docker daemon is reloaded with TLS enabled.

Example:
    >>> bootstrap = CertificateBootstrap(shell=ssh, records=records, config=config,
    ...                                  passphrase=passphrase)
    >>> await bootstrap.run_all(["dev100", "dev101"])
"""

from __future__ import annotations

import asyncio
import re
import shutil
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from linodeswarm.config import ClusterConfig
from linodeswarm.constants import (
    BOOT_POLL_INTERVAL,
    BOOT_POLL_MAX_ATTEMPTS,
    BOOT_SETTLE_DELAY,
    CA_CERT_FILE,
    CA_KEY_FILE,
    CERT_VALIDITY_DAYS,
    FINALIZE_COMMANDS,
    PASSPHRASE_ENV,
    REMOTE_CERT_DIR,
    RSA_KEY_BITS,
)
from linodeswarm.errors import PersistenceError, ValidationError
from linodeswarm.infra.pipeline import for_each
from linodeswarm.infra.protocols import RemoteShell
from linodeswarm.records import RecordStore

from .boot import wait_for_boot_marker
from .openssl import OpenSSL

CLIENT_ALIAS = re.compile(r"^[a-z0-9]{2,50}$")


def san_extension(fqdn: str, public_ipv4: str, private_ipv4: str) -> str:
    """subjectAltName line naming every way the daemon is addressed."""
    names = [
        f"DNS:{fqdn}",
        "DNS:localhost",
        f"IP:{public_ipv4}",
        f"IP:{private_ipv4}",
        "IP:127.0.0.1",
    ]
    return "subjectAltName = " + ",".join(names)


async def sign_request(
    openssl: OpenSSL,
    *,
    csr: Path,
    cert_out: Path,
    extfile: Path,
    cert_dir: Path,
    passphrase: str,
) -> None:
    """Sign ``csr`` with the CA in ``cert_dir``."""
    await openssl.run(
        "x509", "-req", "-days", str(CERT_VALIDITY_DAYS), "-sha256",
        "-in", csr,
        "-CA", cert_dir / CA_CERT_FILE,
        "-CAkey", cert_dir / CA_KEY_FILE,
        "-CAcreateserial",
        "-out", cert_out,
        "-extfile", extfile,
        "-passin", f"env:{PASSPHRASE_ENV}",
        passphrase=passphrase,
    )


@dataclass
class CertificateBootstrap:
    """Certifies the Docker daemon of one host at a time."""

    shell: RemoteShell
    records: RecordStore
    config: ClusterConfig
    passphrase: str
    openssl: OpenSSL = field(default_factory=OpenSSL)
    remote_dir: str = REMOTE_CERT_DIR
    finalize_commands: Sequence[str] = FINALIZE_COMMANDS
    poll_interval: float = BOOT_POLL_INTERVAL
    poll_attempts: int = BOOT_POLL_MAX_ATTEMPTS
    settle_delay: float = BOOT_SETTLE_DELAY

    async def run_all(self, hosts: Sequence[str]) -> list[str]:
        """Certify ``hosts`` in order; the first failure aborts the rest."""
        done: list[str] = []

        async def _one(host: str) -> None:
            done.append(await self.run(host))

        await for_each(hosts, _one)
        return done

    async def run(self, host: str) -> str:
        log = logger.bind(component="certs", host=host)
        server = await self.records.read(host)
        public_ipv4 = server.get("public_ipv4")
        private_ipv4 = server.get("private_ipv4")
        if not public_ipv4 or not private_ipv4:
            raise PersistenceError(f"Record for {host} has no public/private address")

        await wait_for_boot_marker(
            self.shell,
            host,
            interval=self.poll_interval,
            max_attempts=self.poll_attempts,
            settle_delay=self.settle_delay,
        )

        scratch = self.config.scratch_dir / host
        await asyncio.to_thread(scratch.mkdir, parents=True, exist_ok=True)
        key = scratch / "server-key.pem"
        csr = scratch / "server.csr"
        extfile = scratch / "extfile.cnf"
        cert = scratch / "server-cert.pem"
        fqdn = self.config.fqdn(host)

        await self.openssl.run("genrsa", "-out", key, str(RSA_KEY_BITS))
        await self.openssl.run("req", "-subj", f"/CN={fqdn}", "-sha256", "-new", "-key", key, "-out", csr)
        await asyncio.to_thread(extfile.write_text, san_extension(fqdn, public_ipv4, private_ipv4))
        await sign_request(
            self.openssl,
            csr=csr,
            cert_out=cert,
            extfile=extfile,
            cert_dir=self.config.cert_dir,
            passphrase=self.passphrase,
        )
        log.info("{host}: OpenSSL completed!", host=host)

        await self.shell.check(host, f"mkdir -p {self.remote_dir}", "create certificate directory")
        await self.shell.upload(host, key, f"{self.remote_dir}/server-key.pem")
        await self.shell.upload(host, cert, f"{self.remote_dir}/server-cert.pem")
        await self.shell.upload(host, self.config.cert_dir / CA_CERT_FILE, f"{self.remote_dir}/ca.pem")
        await self.shell.check(host, f"rm -f {self.remote_dir}/server.csr", "delete server.csr")

        log.info("{host}: Finalizing Docker Installation...", host=host)
        for command in self.finalize_commands:
            await self.shell.check(host, command)

        log.info("{host}: Ok, all done!", host=host)
        return host


async def make_client_cert(
    openssl: OpenSSL,
    *,
    cert_dir: Path,
    dest_root: Path,
    alias: str,
    passphrase: str,
) -> Path:
    """Create a client key and certificate signed by the local CA.

    Writes ``key.pem``, ``cert.pem`` and a copy of ``ca.pem`` into
    ``dest_root/alias`` and returns that directory.

    Raises:
        ValidationError: Invalid alias or the directory already exists.
    """
    if not CLIENT_ALIAS.match(alias):
        raise ValidationError(
            f"Invalid client alias {alias!r}: use 2-50 lowercase letters or digits"
        )
    dest = dest_root / alias
    if dest.exists():
        raise ValidationError(f"Path already exists: {dest}")
    await asyncio.to_thread(dest.mkdir, parents=True)

    key = dest / "key.pem"
    csr = dest / "client.csr"
    extfile = dest / "extfile.cnf"
    await openssl.run("genrsa", "-out", key, str(RSA_KEY_BITS))
    await openssl.run("req", "-subj", "/CN=client", "-new", "-key", key, "-out", csr)
    await asyncio.to_thread(extfile.write_text, "extendedKeyUsage = clientAuth")
    await sign_request(
        openssl,
        csr=csr,
        cert_out=dest / "cert.pem",
        extfile=extfile,
        cert_dir=cert_dir,
        passphrase=passphrase,
    )
    await asyncio.to_thread(shutil.copyfile, cert_dir / CA_CERT_FILE, dest / CA_CERT_FILE)
    csr.unlink(missing_ok=True)
    extfile.unlink(missing_ok=True)

    logger.bind(component="certs").info("Client certificate written to {dest}", dest=dest)
    return dest
