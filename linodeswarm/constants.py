"""Centralized constants and enums for linodeswarm.

Remote paths, polling intervals and API defaults live here so the
protocols and the provider adapter agree on them.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# Swarm Roles
# =============================================================================


class SwarmRole(StrEnum):
    """Role a host plays in the Docker swarm."""

    MANAGER = "manager"
    WORKER = "worker"


# =============================================================================
# Control Plane
# =============================================================================

LINODE_API_URL: Final = "https://api.linode.com/"
API_KEY_ENV: Final = "LINODE_API_KEY"
DEFAULT_DATACENTER: Final = "london"
DEFAULT_DISPLAY_GROUP: Final = "Docker Cluster"
DNS_TTL_SECONDS: Final = 3600
SWAP_SIZE_MB: Final = 256
GRUB2_KERNEL_LABEL: Final = "GRUB 2"

# Distribution label -> stack script label
DISTRIBUTIONS: Final[dict[str, str]] = {
    "Debian 8": "Debian 8 Docker Development",
    "Ubuntu 16.10": "Ubuntu 16.10 Docker Development",
}


# =============================================================================
# Local Files
# =============================================================================

LEADER_MARKER_FILE: Final = "manager.txt"
CA_CERT_FILE: Final = "ca.pem"
CA_KEY_FILE: Final = "ca-key.pem"
PASSPHRASE_ENV: Final = "SSLDPASSPH"
OPERATOR_PASSPHRASE_ENV: Final = "LINODESWARM_CA_PASSPHRASE"


# =============================================================================
# Remote Paths
# =============================================================================

BOOT_MARKER_PATH: Final = "/root/ss_completion.txt"
REMOTE_CERT_DIR: Final = "/root/scert"
FINALIZE_COMMANDS: Final = ("systemctl daemon-reload", "systemctl restart docker")
SWARM_PORT: Final = 2377
SSH_PORT: Final = 22
SSH_USER: Final = "root"


# =============================================================================
# Timing (seconds)
# =============================================================================

JOB_POLL_INTERVAL: Final = 5.0
JOB_POLL_MAX_ATTEMPTS: Final = 120
BOOT_POLL_INTERVAL: Final = 5.0
BOOT_POLL_MAX_ATTEMPTS: Final = 180
BOOT_SETTLE_DELAY: Final = 1.0
SSH_SETTLE_DELAY: Final = 10.0
SWARM_JOIN_PAUSE: Final = 4.0
SSH_CONNECT_TIMEOUT: Final = 30.0

CERT_VALIDITY_DAYS: Final = 36500
RSA_KEY_BITS: Final = 4096
