"""
HTTP gateway for the LedgerSession.
Talks to the crewplan API with a bearer token and maps error responses back to
the service exceptions.
"""
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import settings
from ..errors import ERRORS_BY_STATUS, QuotaExceeded, SchedulingError, SubscriptionInactive
from ..schemas.scheduling import ScheduleItemCreate, ScheduleItemRestore, ScheduleItemUpdate
from .gateway import ScheduleGateway, normalize_item

logger = structlog.get_logger(__name__)


def error_from_response(response: httpx.Response) -> SchedulingError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = body.get("error")
    if not message:
        detail = body.get("detail")
        message = detail if isinstance(detail, str) else (str(detail) if detail else response.reason_phrase)

    status = response.status_code
    if status == 402:
        return SubscriptionInactive(body.get("subscriptionStatus"))
    if status == 403 and body.get("quotaExceeded"):
        return QuotaExceeded(message, current_usage=body.get("currentUsage"), limit=body.get("limit"))

    error_cls = ERRORS_BY_STATUS.get(status, SchedulingError)
    err = error_cls(message)
    if error_cls is SchedulingError:
        err.status_code = status
    return err


class HttpGateway(ScheduleGateway):
    """
    Gateway over the REST API.

    `client` may be any httpx.Client (FastAPI's TestClient included); otherwise
    one is built from API_BASE_URL / API_TIMEOUT_S.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.token = token or settings.api_token
        self._owns_client = client is None
        self.client = client or httpx.Client(
            base_url=base_url or settings.api_base_url,
            timeout=timeout if timeout is not None else settings.api_timeout_s,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = self.client.request(method, path, headers=self._headers(), **kwargs)
        if response.status_code >= 400:
            err = error_from_response(response)
            logger.info("api_error", method=method, path=path, status=response.status_code, error=err.message)
            raise err
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def list_items(self, start: Optional[date] = None, end: Optional[date] = None) -> List[Dict]:
        params = {}
        if start:
            params["start"] = start.isoformat()
        if end:
            params["end"] = end.isoformat()
        return [normalize_item(i) for i in self._request("GET", "/schedule-items", params=params)]

    def create_item(self, data: ScheduleItemCreate) -> Dict:
        body = data.model_dump(mode="json", exclude_none=True)
        return normalize_item(self._request("POST", "/schedule-items", json=body))

    def restore_item(self, data: ScheduleItemRestore) -> Dict:
        body = data.model_dump(mode="json", exclude_none=True)
        return normalize_item(self._request("POST", "/schedule-items/restore", json=body))

    def update_item(self, item_id: str, data: ScheduleItemUpdate) -> Dict:
        body = data.model_dump(mode="json", exclude_unset=True)
        return normalize_item(self._request("PATCH", f"/schedule-items/{item_id}", json=body))

    def delete_item(self, item_id: str) -> None:
        self._request("DELETE", f"/schedule-items/{item_id}")

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
