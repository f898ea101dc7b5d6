"""Linode API v3 response types.

TypedDicts for API payloads - no conversion needed. Only the fields the
provisioning pipeline reads are declared.
"""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict


class ApiResponse(TypedDict):
    """Envelope of every api_action answer."""

    ACTION: NotRequired[str]
    ERRORARRAY: list[dict[str, Any]]
    DATA: Any


class DatacenterResponse(TypedDict):
    DATACENTERID: int
    LOCATION: str
    ABBR: str


class PlanResponse(TypedDict):
    PLANID: int
    LABEL: str
    PRICE: float
    DISK: int
    RAM: int


class DistributionResponse(TypedDict):
    DISTRIBUTIONID: int
    LABEL: str


class KernelResponse(TypedDict):
    KERNELID: int
    LABEL: str


class StackScriptResponse(TypedDict):
    STACKSCRIPTID: int
    LABEL: str


class LinodeResponse(TypedDict):
    LINODEID: int
    LABEL: str
    STATUS: NotRequired[int]


class DomainResponse(TypedDict):
    DOMAINID: int
    DOMAIN: str


class DomainResourceResponse(TypedDict):
    RESOURCEID: int
    DOMAINID: int
    NAME: str
    TYPE: str
    TARGET: str


class IPAddressResponse(TypedDict):
    IPADDRESSID: int
    IPADDRESS: str
    ISPUBLIC: int


class JobResponse(TypedDict):
    JOBID: int
    LINODEID: int
    ACTION: str
    HOST_SUCCESS: int | str
    HOST_FINISH_DT: str
    HOST_MESSAGE: NotRequired[str]
