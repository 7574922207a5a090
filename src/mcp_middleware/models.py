"""Records mirroring the Middleware.io REST API JSON shapes.

Request records serialize through :meth:`WireModel.to_wire`, which uses the
upstream field names and drops unset fields. Response records accept
fields this module does not know about so that upstream additions pass
through to the caller untouched.
"""

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

# Tags of the "with" clause entries understood by the widget builder API
BUILDER_CONFIG_WITH_KEY_SELECT_DATA_BY = "SELECT_DATA_BY"
BUILDER_CONFIG_WITH_KEY_ATTRIBUTE_FILTER = "ATTRIBUTE_FILTER"


class WireModel(BaseModel):
    """Base for records sent to the API."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ResponseModel(WireModel):
    """Base for records received from the API."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        # Keeps nulls the API sent, drops fields it never sent
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


# The API sends null for empty lists and unset counts
def _null_to_list(value: Any) -> Any:
    return [] if value is None else value


def _null_to_zero(value: Any) -> Any:
    return 0 if value is None else value


Count = Annotated[int, BeforeValidator(_null_to_zero)]


class ErrorResponse(ResponseModel):
    error: str | None = None
    success: bool | None = None


# Dashboards (reports)


class ReportUser(ResponseModel):
    name: str | None = None


class Report(ResponseModel):
    id: int | None = None
    key: str | None = None
    label: str | None = None
    description: str | None = None
    display_scope: str | None = None
    visibility: str | None = None
    favorite: bool | None = None
    account_id: int | None = None
    project_id: int | None = None
    user_id: int | None = None
    view_count: int | None = None
    meta_data: Any = None
    user: ReportUser | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ReportListResponse(ResponseModel):
    reports: Annotated[list[Report], BeforeValidator(_null_to_list)] = Field(
        default_factory=list
    )
    total: Count = 0
    limit: Count = 0
    offset: Count = 0


class UpsertReportRequest(WireModel):
    id: int | None = None
    key: str | None = None
    label: str
    description: str | None = None
    display_scope: str | None = None
    visibility: str
    meta_data: Any = Field(default=None, alias="metaData")


# Widgets


class WidgetScope(ResponseModel):
    id: int | None = None
    builder_id: int | None = None
    report_id: int | None = None
    display_scope: str | None = None
    order_id: int | None = None
    project_id: int | None = None
    meta_data: Any = None
    created_at: str | None = None
    updated_at: str | None = None


class Widget(ResponseModel):
    id: int | None = None
    key: str | None = None
    label: str | None = None
    config: Any = None
    meta_data: Any = None
    scope: WidgetScope | None = None
    visibility: str | None = None
    status: str | None = None
    account_id: int | None = None
    project_id: int | None = None
    user_id: int | None = None
    widget_app_id: int | None = None
    dataset_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


class BuilderConfigSource(ResponseModel):
    """Data source of a builder config item, e.g. ``{"name": "host"}``."""

    name: str | None = None
    alias: str | None = None
    dataset_id: int | None = None


class BuilderConfigWith(WireModel):
    key: str
    value: Any = None
    is_arg: bool = Field(default=True, alias="isArg")


class BuilderConfigItem(WireModel):
    with_: list[BuilderConfigWith] = Field(default_factory=list, alias="with")
    columns: list[str] = Field(default_factory=list)
    source: BuilderConfigSource | None = None
    id: str | None = None
    meta_data: Any = None
    metric_metadata: Any = Field(default=None, alias="metricMetadata")
    key: str | None = None


class ReportView(WireModel):
    report_id: int | None = Field(default=None, alias="reportId")
    report_key: str | None = Field(default=None, alias="reportKey")
    report_name: str | None = Field(default=None, alias="reportName")
    report_description: str | None = Field(default=None, alias="reportDescription")
    metadata: Any = None


class Resource(WireModel):
    name: str


class BuilderViewOptions(WireModel):
    display_scope: str | None = Field(default=None, alias="displayScope")
    disable_user_edit: bool | None = Field(default=None, alias="disableUserEdit")
    report: ReportView | None = None
    resource: Resource | None = None


class LayoutItem(WireModel):
    x: int = 0
    y: int = 0
    w: int = 0
    h: int = 0
    scope_id: int | None = Field(default=None, alias="_scope_id")
    resize_handles: list[str] | None = Field(default=None, alias="resizeHandles")


class LayoutRequest(WireModel):
    layouts: list[LayoutItem]


class RequestParam(WireModel):
    key: str
    value: Any = None


class CustomWidget(WireModel):
    """Widget definition accepted by the create, update and data endpoints."""

    builder_id: int | None = Field(default=None, alias="builderId")
    key: str | None = None
    label: str | None = None
    description: str | None = None
    builder_config: list[BuilderConfigItem] | None = Field(
        default=None, alias="builderConfig"
    )
    builder_meta_data: dict[str, Any] | None = Field(
        default=None, alias="builderMetaData"
    )
    builder_view_options: BuilderViewOptions | None = Field(
        default=None, alias="builderViewOptions"
    )
    layout: LayoutItem | None = None
    params: list[RequestParam] | None = None
    scope_id: int | None = Field(default=None, alias="scopeId")
    widget_app_id: int | None = Field(default=None, alias="widgetAppId")
    use_v2: bool | None = Field(default=None, alias="useV2")
    keep_old_data: bool | None = Field(default=None, alias="keepOldData")
    return_only_formula_result: bool | None = Field(
        default=None, alias="returnOnlyFormulaResult"
    )
    is_clone: bool | None = Field(default=None, alias="isClone")
    category: str | None = None
    formulas: list[Any] | None = None
    dont_refresh_data: bool | None = Field(default=None, alias="dontRefreshData")


class TimeRange(ResponseModel):
    from_ts: int | None = Field(default=None, alias="fromTs")
    to_ts: int | None = Field(default=None, alias="toTs")
    interval: int | None = None


class BuilderDataResponse(ResponseModel):
    key: str | None = None
    chart_data: Any = None
    chart_data_v2: Any = None
    query_data: Any = None
    time_range: TimeRange | None = None
    not_available_metrics: list[str] | None = None
    error: str | None = None
    error_desc: str | None = None


# Metrics and queries


class MetricsV2Request(WireModel):
    data_type: str = Field(alias="dataType")
    widget_type: str = Field(alias="widgetType")
    kpi_type: int | None = Field(default=None, alias="kpiType")
    kpi_types: list[int] | None = Field(default=None, alias="kpiTypes")
    resource: str | None = None
    resources: list[str] | None = None
    metric: str | None = None
    page: int | None = None
    limit: int | None = None
    search: str | None = None


class MetricsV2Response(ResponseModel):
    items: list[dict[str, Any]] | None = None
    page: Count = 0
    limit: Count = 0


class QueryTimeRange(WireModel):
    from_: int = Field(alias="from")
    to: int


class Query(WireModel):
    chart_type: str = Field(alias="chartType")
    columns: list[str]
    resources: list[str]
    time_range: QueryTimeRange = Field(alias="timeRange")
    filters: dict[str, Any] | None = None
    group_by: list[str] | None = Field(default=None, alias="groupBy")


class QueryRequest(WireModel):
    queries: list[Query]


class QueryColumn(ResponseModel):
    accessor: str | None = None
    order: int | None = None
    sort: str | None = None
    is_metric: bool | None = Field(default=None, alias="isMetric")


class QueryData(ResponseModel):
    columns: list[QueryColumn] | None = None
    data: list[dict[str, Any]] | None = None


class QueryResult(ResponseModel):
    query_data: QueryData | None = None


class QueryResponse(ResponseModel):
    query_results: list[QueryResult] | None = None


# Alerts


class NewAlert(WireModel):
    rule_id: int
    executor_id: int | None = None
    project_uid: str | None = None
    title: str
    message: str | None = None
    status: int
    value: float | None = None
    threshold: float | None = None
    operator: str | None = None
    unit: str | None = None
    attributes: dict[str, str] | None = None
    triggered_at: str | None = None
    created_at: str | None = None


class Alert(ResponseModel):
    id: int | None = None
    rule_id: int | None = None
    executor_id: int | None = None
    project_uid: str | None = None
    title: str | None = None
    message: str | None = None
    status: int | None = None
    value: float | None = None
    threshold: float | None = None
    operator: str | None = None
    unit: str | None = None
    attributes: dict[str, Any] | None = None
    attributesb: Any = None
    total_count: int | None = None
    triggered_at: str | None = None
    created_at: str | None = None


class ViewModelAlert(ResponseModel):
    id: int | None = None
    executor_id: int | None = None
    title: str | None = None
    message: str | None = None
    status: int | None = None
    value: float | None = None
    threshold: float | None = None
    operator: str | None = None
    unit: str | None = None
    attributes: dict[str, Any] | None = None
    total_count: int | None = None
    triggered_at: str | None = None


class Column(ResponseModel):
    key: str | None = None
    label: str | None = None


class AlertsResponse(ResponseModel):
    alerts: list[ViewModelAlert] | None = None
    columns: list[Column] | None = None
    latest_status: int | None = None
    latest_triggered_at: str | None = None


class CountBy(ResponseModel):
    name: str | None = None
    status: int | None = None
    value: float | None = None
    timestamp: str | None = None


class StatsResponse(ResponseModel):
    count_by_status: list[CountBy] | None = None
    count_by_title: list[CountBy] | None = None
    timeseries_by_title: list[CountBy] | None = None


# Incidents


class Incident(ResponseModel):
    fingerprint: str | None = None
    issue_url: str | None = None


class IncidentsResponse(ResponseModel):
    items: Annotated[list[Incident], BeforeValidator(_null_to_list)] = Field(
        default_factory=list
    )
