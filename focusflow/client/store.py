"""Async HTTP client for the FocusFlow timer store.

Transport failures and 5xx answers surface as `StoreUnavailable` (or
`BatchWriteFailed` for batched duration writes), a stale task id as `None`,
and a rejected payload as `InvalidFormat`.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import httpx
from dotenv import load_dotenv

from focusflow.errors import BatchWriteFailed, InvalidFormat, StoreUnavailable
from focusflow.models.task import Task

load_dotenv()

logger = logging.getLogger(__name__)

FOCUSFLOW_API_URL = os.getenv("FOCUSFLOW_API_URL", "http://localhost:8000")
FOCUSFLOW_API_TOKEN = os.getenv("FOCUSFLOW_API_TOKEN", "")
_TIMEOUT_SECONDS = 10


class HttpTimerStoreClient:
    """Timer store operations over the FocusFlow HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        token = token if token is not None else FOCUSFLOW_API_TOKEN
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or FOCUSFLOW_API_URL,
            timeout=_TIMEOUT_SECONDS,
        )
        self._client.headers.update(headers)

    async def __aenter__(self) -> "HttpTimerStoreClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, *, batch: bool = False, **kwargs) -> Optional[Any]:
        error_cls = BatchWriteFailed if batch else StoreUnavailable
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(f"Timer store request {method} {path} failed: {type(exc).__name__}")
            raise error_cls(f"{method} {path} failed: {type(exc).__name__}") from exc

        if resp.status_code == 404:
            return None
        if resp.status_code in (400, 422):
            raise InvalidFormat(_detail(resp))
        if resp.status_code >= 400:
            logger.warning(f"Timer store answered {resp.status_code} for {method} {path}")
            raise error_cls(f"{method} {path} answered {resp.status_code}")
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def _task_call(self, method: str, path: str, **kwargs) -> Optional[Task]:
        data = await self._request(method, path, **kwargs)
        if not data or data.get("task") is None:
            return None
        return Task.model_validate(data["task"])

    async def list_tasks(self, date: str) -> List[Task]:
        data = await self._request("GET", "/tasks", params={"date": date})
        return [Task.model_validate(t) for t in (data or {}).get("tasks", [])]

    async def get_running_timer(self, date: str) -> Optional[Task]:
        return await self._task_call("GET", "/timer/running", params={"date": date})

    async def start_timer(self, task_id: str, date: Optional[str] = None) -> Optional[Task]:
        params = {"date": date} if date else None
        return await self._task_call("POST", f"/timer/{task_id}/start", params=params)

    async def stop_timer(self, task_id: str) -> Optional[Task]:
        return await self._task_call("POST", f"/timer/{task_id}/stop")

    async def pause_timer(self, task_id: str) -> Optional[Task]:
        return await self._task_call("POST", f"/timer/{task_id}/pause")

    async def resume_timer(self, task_id: str) -> Optional[Task]:
        return await self._task_call("POST", f"/timer/{task_id}/resume")

    async def update_timer_duration(self, task_id: str, remaining_duration: int) -> Optional[Task]:
        return await self._task_call(
            "PUT", f"/timer/{task_id}/duration", json={"remaining_duration": remaining_duration}
        )

    async def batch_update_durations(self, updates: Dict[str, int]) -> Dict[str, Any]:
        """Send `{task_id: remaining_duration}` in one request.

        Raises:
            BatchWriteFailed: If the request fails or the server rejects it
        """
        payload = {"updates": [{"id": k, "remaining_duration": v} for k, v in updates.items()]}
        data = await self._request("POST", "/timer/durations", json=payload, batch=True)
        return data or {"updated_count": 0, "not_found_ids": []}


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    detail = body.get("detail") if isinstance(body, dict) else body
    return detail if isinstance(detail, str) else str(detail)
