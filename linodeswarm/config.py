"""TOML-based cluster configuration.

Loads a cluster description (API key, domain, directories and the host
list) into immutable dataclasses. Example file::

    api_key = "..."             # or LINODE_API_KEY
    domain_name = "example.com"
    cert_dir = "./certs"
    db_dir = "./db"
    distro = "Ubuntu 16.10"
    docker_tls = true
    hosts = ["dev100", "dev101"]

    [host_config.dev100]
    type = "Linode 1024"
    swarm = "manager"
    password = "..."
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from linodeswarm.constants import (
    API_KEY_ENV,
    DEFAULT_DATACENTER,
    DEFAULT_DISPLAY_GROUP,
    DISTRIBUTIONS,
    LINODE_API_URL,
    SwarmRole,
)
from linodeswarm.errors import ValidationError

type RawConfig = dict[str, Any]

DEFAULT_CONFIG_NAME = "linodeswarm.toml"


@dataclass(frozen=True, slots=True)
class HostConfig:
    """Static description of one host: its plan, swarm role and root password."""

    plan_type: str
    role: SwarmRole
    password: str


@dataclass(frozen=True, slots=True)
class ClusterConfig:
    """Everything the orchestration core needs from the operator."""

    api_key: str
    domain_name: str
    hosts: tuple[str, ...]
    host_config: dict[str, HostConfig]
    cert_dir: Path = Path("certs")
    db_dir: Path = Path("db")
    scratch_dir: Path = Path("scratch")
    client_cert_dir: Path = Path("clientcerts")
    distro: str = "Ubuntu 16.10"
    docker_tls: bool = False
    datacenter: str = DEFAULT_DATACENTER
    display_group: str = DEFAULT_DISPLAY_GROUP
    api_url: str = LINODE_API_URL

    @property
    def stack_script_label(self) -> str:
        return DISTRIBUTIONS[self.distro]

    def role_of(self, host: str) -> SwarmRole:
        return self.host_config[host].role

    def fqdn(self, host: str) -> str:
        return f"{host}.{self.domain_name}"


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        raise ValidationError(f"Config file not found: {path}")
    with path.open("rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValidationError(f"Invalid TOML in {path}: {e}") from e


def _build_host(name: str, raw: RawConfig) -> HostConfig:
    missing = [k for k in ("type", "swarm", "password") if k not in raw]
    if missing:
        raise ValidationError(f"Host '{name}' missing fields: {', '.join(missing)}")
    try:
        role = SwarmRole(raw["swarm"])
    except ValueError:
        raise ValidationError(f"Unknown swarm type for '{name}': {raw['swarm']}") from None
    return HostConfig(plan_type=str(raw["type"]), role=role, password=str(raw["password"]))


def parse_config(raw: RawConfig, *, base_dir: Path | None = None) -> ClusterConfig:
    """Validate a raw mapping and build a ClusterConfig.

    Relative directories are resolved against ``base_dir`` (the directory
    holding the config file).
    """
    base = base_dir or Path.cwd()

    api_key = raw.get("api_key") or os.environ.get(API_KEY_ENV)
    if not api_key:
        raise ValidationError(f"Linode API key not provided. Set api_key or {API_KEY_ENV}.")

    domain_name = raw.get("domain_name")
    if not domain_name:
        raise ValidationError("Missing 'domain_name'")

    hosts = tuple(raw.get("hosts", ()))
    if len(set(hosts)) != len(hosts):
        raise ValidationError(f"Duplicate hosts in 'hosts': {list(hosts)}")

    raw_hosts: RawConfig = raw.get("host_config", {})
    host_config = {name: _build_host(name, value) for name, value in raw_hosts.items()}
    undefined = [h for h in hosts if h not in host_config]
    if undefined:
        raise ValidationError(f"Hosts without host_config entry: {', '.join(undefined)}")

    distro = raw.get("distro", "Ubuntu 16.10")
    if distro not in DISTRIBUTIONS:
        raise ValidationError(
            f"Unknown distribution: {distro}. Valid: {', '.join(DISTRIBUTIONS)}"
        )

    docker_tls = raw.get("docker_tls", False)
    if isinstance(docker_tls, str):
        if docker_tls not in ("on", "off"):
            raise ValidationError("Unknown config property: docker_tls=on|off")
        docker_tls = docker_tls == "on"

    def _dir(key: str, default: str) -> Path:
        return base / Path(raw.get(key, default))

    return ClusterConfig(
        api_key=api_key,
        domain_name=domain_name,
        hosts=hosts,
        host_config=host_config,
        cert_dir=_dir("cert_dir", "certs"),
        db_dir=_dir("db_dir", "db"),
        scratch_dir=_dir("scratch_dir", "scratch"),
        client_cert_dir=_dir("client_cert_dir", "clientcerts"),
        distro=distro,
        docker_tls=bool(docker_tls),
        datacenter=raw.get("datacenter", DEFAULT_DATACENTER),
        display_group=raw.get("display_group", DEFAULT_DISPLAY_GROUP),
        api_url=raw.get("api_url", LINODE_API_URL),
    )


def load_config(path: Path | None = None) -> ClusterConfig:
    """Load and validate the cluster configuration file."""
    config_path = path or Path.cwd() / DEFAULT_CONFIG_NAME
    return parse_config(_read_toml(config_path), base_dir=config_path.parent)
