"""Local openssl invocations for key generation and signing.

The CA passphrase never appears on a command line: it is placed in
``SSLDPASSPH`` on a copy of the environment and referenced as
``-passin env:SSLDPASSPH``.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from linodeswarm.constants import CA_CERT_FILE, CA_KEY_FILE, PASSPHRASE_ENV
from linodeswarm.errors import CertificateError, ValidationError

OPENSSL_ENV = "LINODESWARM_OPENSSL"


@dataclass(frozen=True, slots=True)
class OpenSSL:
    """Runs the openssl binary as a subprocess."""

    executable: str = "openssl"

    @classmethod
    def from_env(cls) -> OpenSSL:
        return cls(os.environ.get(OPENSSL_ENV, "openssl"))

    async def run(self, *args: str | Path, passphrase: str | None = None) -> tuple[str, str]:
        """Run ``openssl <args>`` and return (stdout, stderr).

        Raises:
            CertificateError: openssl missing or exited non-zero.
        """
        argv = [str(a) for a in args]
        logger.bind(component="openssl").debug("OpenSSL exec: {argv}", argv=argv)

        env = dict(os.environ)
        if passphrase is not None:
            env[PASSPHRASE_ENV] = passphrase

        try:
            proc = await asyncio.create_subprocess_exec(
                self.executable,
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise CertificateError(argv[0] if argv else "openssl", None, str(e)) from e

        stdout, stderr = await proc.communicate()
        out, err = stdout.decode(errors="replace"), stderr.decode(errors="replace")
        if proc.returncode != 0:
            raise CertificateError(argv[0] if argv else "openssl", proc.returncode, err)
        return out, err

    async def verify_passphrase(self, ca_key: Path, passphrase: str) -> bool:
        """True if ``passphrase`` unlocks the CA private key."""
        try:
            await self.run(
                "rsa", "-check", "-noout", "-in", ca_key,
                "-passin", f"env:{PASSPHRASE_ENV}",
                passphrase=passphrase,
            )
        except CertificateError:
            return False
        return True


def check_ca_files(cert_dir: Path) -> tuple[Path, Path]:
    """Return (ca.pem, ca-key.pem) paths, failing if either is unreadable."""
    ca_cert = cert_dir / CA_CERT_FILE
    ca_key = cert_dir / CA_KEY_FILE
    for path in (ca_cert, ca_key):
        if not os.access(path, os.R_OK):
            raise ValidationError(f"The certificate authority file is not accessible: {path}")
    return ca_cert, ca_key


def ensure_openssl(openssl: OpenSSL) -> None:
    if shutil.which(openssl.executable) is None:
        raise ValidationError(f"openssl executable not found: {openssl.executable}")
