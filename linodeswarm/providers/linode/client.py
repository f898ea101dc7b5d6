"""Async gateway to the Linode v3 control-plane API.

Every request is a form-encoded POST carrying ``api_key``, ``api_action``
and the action's parameters as strings. A non-empty ``ERRORARRAY`` in the
answer is fatal: it is raised as ApiError and nothing is retried.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from loguru import logger

from linodeswarm.constants import LINODE_API_URL
from linodeswarm.errors import ApiError
from linodeswarm.infra.http import HttpClient, HttpError
from linodeswarm.infra.pipeline import for_each

from .types import ApiResponse

type Params = Mapping[str, Any]
type BatchEntry = tuple[str, Params, Callable[[ApiResponse], None]]


def encode_param(value: Any) -> str:
    """Render a parameter value the way the API expects it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class LinodeGateway:
    """Issues single and batched ``api_action`` calls."""

    def __init__(
        self,
        api_key: str,
        *,
        url: str = LINODE_API_URL,
        timeout: float = 60,
        http: HttpClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._http = http or HttpClient(url, timeout=timeout)
        self._log = logger.bind(component="gateway")

    async def __aenter__(self) -> LinodeGateway:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.close()

    def _form(self, action: str, params: Params) -> dict[str, str]:
        form = {"api_key": self._api_key, "api_action": action}
        for key, value in params.items():
            form[key] = encode_param(value)
        return form

    async def call(self, action: str, params: Params | None = None) -> ApiResponse:
        """Issue one API action and return the decoded answer.

        Raises:
            ApiError: Transport failure, undecodable body or a reported error.
        """
        params = params or {}
        self._log.debug("EXEC LINODE COMMAND: {action} {params}", action=action, params=dict(params))
        try:
            answer = await self._http.post_form("", self._form(action, params))
        except HttpError as e:
            raise ApiError(action, f"HTTP {e.status}: {e.body[:200]}") from e
        except json.JSONDecodeError as e:
            raise ApiError(action, f"invalid JSON response: {e}") from e

        if not isinstance(answer, dict) or "ERRORARRAY" not in answer:
            raise ApiError(action, f"unexpected response: {answer!r:.200}")

        errors = answer["ERRORARRAY"]
        if errors:
            self._log.error("FAILED BECAUSE ERROR: {action} {errors}", action=action, errors=errors)
            raise ApiError(action, errors)

        self._log.debug("RESULT: {action} {data}", action=action, data=answer.get("DATA"))
        return answer  # type: ignore[return-value]

    async def call_batch(self, batch: Sequence[BatchEntry]) -> None:
        """Issue each ``(action, params, on_result)`` in order.

        ``on_result`` receives the answer before the next call is made, so
        catalog lookups complete against one consistent snapshot.
        """
        async def _issue(entry: BatchEntry) -> None:
            action, params, on_result = entry
            on_result(await self.call(action, params))

        await for_each(batch, _issue)
