"""Async HTTP client for the Middleware.io REST API.

Every method performs a single request against ``<base_url>/api/v1`` and
either returns the decoded response or raises a :class:`MiddlewareError`.
Nothing is retried or cached.
"""

import json
from typing import Any, TypeVar

import httpx
from loguru import logger
from pydantic import ValidationError

from .config import Config
from .models import (
    Alert,
    AlertsResponse,
    BuilderDataResponse,
    CustomWidget,
    ErrorResponse,
    IncidentsResponse,
    LayoutRequest,
    MetricsV2Request,
    MetricsV2Response,
    NewAlert,
    QueryRequest,
    QueryResponse,
    Report,
    ReportListResponse,
    ResponseModel,
    StatsResponse,
    UpsertReportRequest,
    Widget,
)

API_PREFIX = "/api/v1"
DEFAULT_TIMEOUT = 30.0

HTML_RESPONSE_MESSAGE = (
    "received HTML response instead of JSON. This usually indicates the "
    "endpoint doesn't exist or there's an authentication issue. "
    "Response preview: {preview}"
)


class MiddlewareError(Exception):
    """Base error for failed Middleware API calls."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MiddlewareConnectionError(MiddlewareError):
    """The API could not be reached."""


class MiddlewareAPIError(MiddlewareError):
    """The API answered with a non-2xx status."""


class MiddlewareResponseError(MiddlewareError):
    """A successful response could not be decoded as JSON."""


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


T = TypeVar("T", bound=ResponseModel)


def _decode(model: type[T], data: Any) -> T:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MiddlewareResponseError(
            f"unexpected {model.__name__} response: {e}"
        ) from e


def _query_params(**params: Any) -> dict[str, str]:
    """Keep only set parameters: non-empty strings and positive numbers."""
    query = {}
    for name, value in params.items():
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, int) and value <= 0:
            continue
        if isinstance(value, str) and not value:
            continue
        query[name] = str(value)
    return query


class MiddlewareClient:
    """Client for the Middleware.io API.

    Args:
        base_url: Base URL of the Middleware account. A trailing slash is
            ignored.
        api_key: API key sent in the ``ApiKey`` header.
        authorization: Optional ``Authorization`` header value. When set it
            is sent instead of the API key.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, mainly for tests.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        authorization: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.authorization = authorization
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: Config) -> "MiddlewareClient":
        return cls(config.base_url, config.api_key, config.authorization)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.authorization:
            headers["Authorization"] = self.authorization
        elif self.api_key:
            headers["ApiKey"] = self.api_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Returns None for an empty response body.
        """
        url = f"{self.base_url}{API_PREFIX}{path}"
        logger.debug(f"Request: Method={method} Path={path} URL={url}")

        content = None
        if body is not None:
            content = json.dumps(body)
            logger.debug(f"Request Body: {content}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    url,
                    content=content,
                    params=params or None,
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            raise MiddlewareConnectionError(f"request failed: {e}") from e

        text = response.text
        if not response.is_success:
            raise MiddlewareAPIError(
                self._error_message(response.status_code, text),
                status_code=response.status_code,
            )

        if not text:
            return None
        if text.startswith("<"):
            raise MiddlewareResponseError(
                HTML_RESPONSE_MESSAGE.format(preview=truncate(text, 200)),
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise MiddlewareResponseError(
                f"failed to decode response: {e}", status_code=response.status_code
            ) from e

    @staticmethod
    def _error_message(status_code: int, text: str) -> str:
        try:
            error = ErrorResponse.model_validate_json(text).error
        except ValueError:
            error = ""
        if error:
            return f"API error ({status_code}): {error}"
        if text.startswith("<"):
            return f"API error ({status_code}): " + HTML_RESPONSE_MESSAGE.format(
                preview=truncate(text, 200)
            )
        return f"API error ({status_code}): {truncate(text, 500)}"

    # Dashboards

    async def get_dashboards(
        self,
        limit: int | None = None,
        offset: int | None = None,
        search: str | None = None,
        filter_by: str | None = None,
        display_scope: str | None = None,
        sort: str | None = None,
    ) -> ReportListResponse:
        params = _query_params(
            limit=limit,
            offset=offset,
            search=search,
            filterBy=filter_by,
            display_scope=display_scope,
            sort=sort,
        )
        data = await self._request("GET", "/builder/report", params=params)
        return _decode(ReportListResponse, data or {})

    async def get_dashboard_by_key(self, report_key: str) -> ReportListResponse:
        data = await self._request("GET", f"/builder/report/{report_key}")
        return _decode(ReportListResponse, data or {})

    async def create_dashboard(self, request: UpsertReportRequest) -> Report:
        data = await self._request("POST", "/builder/report", request.to_wire())
        return _decode(Report, data or {})

    async def update_dashboard(
        self, report_id: int, request: UpsertReportRequest
    ) -> Report:
        data = await self._request(
            "PUT", f"/builder/report/{report_id}", request.to_wire()
        )
        return _decode(Report, data or {})

    async def delete_dashboard(self, report_id: int) -> None:
        await self._request("DELETE", f"/builder/report/{report_id}")

    async def clone_dashboard(self, request: UpsertReportRequest) -> Report:
        data = await self._request("POST", "/builder/report/clone", request.to_wire())
        return _decode(Report, data or {})

    async def set_dashboard_favorite(self, report_id: int, favorite: bool) -> None:
        flag = "true" if favorite else "false"
        await self._request("GET", f"/builder/report/favourite/{report_id}/{flag}")

    # Widgets

    async def get_widgets(
        self, report_id: int | None = None, display_scope: str | None = None
    ) -> Any:
        params = _query_params(report_id=report_id, display_scope=display_scope)
        return await self._request("GET", "/builder/widget", params=params)

    async def create_widget(self, widget: CustomWidget) -> Widget:
        data = await self._request("POST", "/builder/widget", widget.to_wire())
        return _decode(Widget, data or {})

    async def update_widget(self, widget: CustomWidget) -> Widget:
        # The builder endpoint updates in place when builderId is set
        return await self.create_widget(widget)

    async def delete_widget(self, builder_id: int) -> None:
        await self._request("DELETE", f"/builder/widget/{builder_id}")

    async def get_widget_data(self, widget: CustomWidget) -> BuilderDataResponse:
        data = await self._request("POST", "/builder/widget/data", widget.to_wire())
        return _decode(BuilderDataResponse, data or {})

    async def get_multi_widget_data(
        self, widgets: list[CustomWidget]
    ) -> list[BuilderDataResponse]:
        data = await self._request(
            "POST", "/builder/widget/multi-data", [w.to_wire() for w in widgets]
        )
        return [_decode(BuilderDataResponse, item) for item in data or []]

    async def update_widget_layouts(self, request: LayoutRequest) -> None:
        await self._request("PUT", "/builder/widget/scope/layouts", request.to_wire())

    # Metrics and queries

    async def get_metrics(self, request: MetricsV2Request) -> MetricsV2Response:
        data = await self._request("POST", "/builder/metrics-v2", request.to_wire())
        return _decode(MetricsV2Response, data or {})

    async def get_resources(self) -> list[str]:
        return await self._request("GET", "/builder/resources") or []

    async def query(self, request: QueryRequest) -> QueryResponse:
        data = await self._request("POST", "/query", request.to_wire())
        if data is None:
            raise MiddlewareResponseError("query returned an empty response")
        return _decode(QueryResponse, data)

    # Alerts

    async def get_alerts(
        self, rule_id: int, page: int | None = None, order_by: str | None = None
    ) -> AlertsResponse:
        params = _query_params(page=page, order_by=order_by)
        data = await self._request("GET", f"/rules/{rule_id}/alerts", params=params)
        return _decode(AlertsResponse, data or {})

    async def create_alert(self, rule_id: int, alert: NewAlert) -> Alert:
        data = await self._request("POST", f"/rules/{rule_id}/alerts", alert.to_wire())
        return _decode(Alert, data or {})

    async def get_alert_stats(self, rule_id: int) -> StatsResponse:
        data = await self._request("GET", f"/rules/{rule_id}/alerts/stats")
        return _decode(StatsResponse, data or {})

    # Incidents

    def issue_url(self, fingerprint: str) -> str:
        return f"{self.base_url}/ops-ai?fingerprint={fingerprint}"

    async def get_incidents(
        self,
        from_ts: int | None = None,
        to_ts: int | None = None,
        page: int | None = None,
        filter: str | None = None,
        status: str | None = None,
        search: str | None = None,
    ) -> IncidentsResponse:
        params = _query_params(
            from_ts=from_ts,
            to_ts=to_ts,
            page=page,
            filter=filter,
            status=status,
            search=search,
        )
        data = await self._request("GET", "/ops-ai/incidents", params=params)
        result = _decode(IncidentsResponse, data or {})
        for item in result.items:
            if item.fingerprint:
                item.issue_url = self.issue_url(item.fingerprint)
        return result

    async def get_incident_detail(
        self,
        fingerprint: str,
        from_ts: int | None = None,
        to_ts: int | None = None,
        filter: str | None = None,
    ) -> dict[str, Any]:
        params = _query_params(
            fingerprint=fingerprint, from_ts=from_ts, to_ts=to_ts, filter=filter
        )
        return await self._request("GET", "/ops-ai/incident-detail", params=params) or {}
