"""linodeswarm - provision Docker swarm clusters on Linode.

Example:

    from linodeswarm import Orchestrator, load_config, provision_cluster

    async with Orchestrator(load_config()) as orch:
        report = await provision_cluster(orch, passphrase=passphrase)
        print(report.swarm.leader)
"""

# Logging (disabled until setup_logging is called)
from linodeswarm.logging import LogConfig, setup_logging, teardown_logging

# Configuration
from linodeswarm.config import ClusterConfig, HostConfig, load_config, parse_config
from linodeswarm.constants import SwarmRole

# Errors
from linodeswarm.errors import (
    ApiError,
    BootTimeoutError,
    CatalogError,
    CertificateError,
    CommandError,
    ConnectError,
    JobTimeoutError,
    LinodeSwarmError,
    PersistenceError,
    ValidationError,
)

# Run resources and drivers
from linodeswarm.orchestrator import Orchestrator
from linodeswarm.provision import ProvisionReport, Timing, provision_cluster
from linodeswarm.records import RecordStore
from linodeswarm.teardown import TeardownReport, delete_hosts, parse_selection

# Post-boot protocols
from linodeswarm.bootstrap import CertificateBootstrap, SwarmBootstrap, SwarmResult, make_client_cert

__version__ = "0.1.0"

__all__ = [
    "ApiError",
    "BootTimeoutError",
    "CatalogError",
    "CertificateBootstrap",
    "CertificateError",
    "ClusterConfig",
    "CommandError",
    "ConnectError",
    "HostConfig",
    "JobTimeoutError",
    "LinodeSwarmError",
    "LogConfig",
    "Orchestrator",
    "PersistenceError",
    "ProvisionReport",
    "RecordStore",
    "SwarmBootstrap",
    "SwarmResult",
    "SwarmRole",
    "TeardownReport",
    "Timing",
    "ValidationError",
    "delete_hosts",
    "load_config",
    "make_client_cert",
    "parse_config",
    "parse_selection",
    "provision_cluster",
    "setup_logging",
    "teardown_logging",
]
