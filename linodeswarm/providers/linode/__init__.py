"""Linode v3 API adapter: gateway, fleet mapper, job poller, catalog."""

from linodeswarm.providers.linode.catalog import Catalog, fetch_catalog
from linodeswarm.providers.linode.client import LinodeGateway, encode_param
from linodeswarm.providers.linode.fleet import ActionDescriptor, for_each_host
from linodeswarm.providers.linode.jobs import host_succeeded, monitor_job, wait_for_boot

__all__ = [
    "ActionDescriptor",
    "Catalog",
    "LinodeGateway",
    "encode_param",
    "fetch_catalog",
    "for_each_host",
    "host_succeeded",
    "monitor_job",
    "wait_for_boot",
]
