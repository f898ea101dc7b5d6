"""Post-boot protocols run over SSH: Docker TLS certificates and swarm membership."""

from linodeswarm.bootstrap.boot import wait_for_boot_marker
from linodeswarm.bootstrap.certs import CertificateBootstrap, make_client_cert, san_extension
from linodeswarm.bootstrap.openssl import OpenSSL, check_ca_files, ensure_openssl
from linodeswarm.bootstrap.swarm import (
    SwarmBootstrap,
    SwarmResult,
    SwarmState,
    SwarmTokens,
    init_command,
    join_command,
)

__all__ = [
    "CertificateBootstrap",
    "OpenSSL",
    "SwarmBootstrap",
    "SwarmResult",
    "SwarmState",
    "SwarmTokens",
    "check_ca_files",
    "ensure_openssl",
    "init_command",
    "join_command",
    "make_client_cert",
    "san_extension",
    "wait_for_boot_marker",
]
