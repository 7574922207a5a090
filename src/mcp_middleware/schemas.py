"""Structured tool inputs.

These records describe the nested objects accepted by the widget, layout
and query tools. FastMCP derives the published JSON schema from them, so
field names, aliases and enum values are part of the tool contract.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import BuilderConfigSource

AggregationMethod = Literal["avg", "sum", "min", "max", "any", "uniq", "count", "group"]
RollupMethod = Literal[
    "avg", "sum", "min", "max", "any", "uniq", "count", "group", "none"
]
WidgetType = Literal[
    "time_series_chart",
    "bar_chart",
    "data_table",
    "query_value",
    "pie_chart",
    "scatter_plot",
    "count_chart",
    "tree_chart",
    "top_list_chart",
    "heatmap_chart",
    "hexagon_chart",
]
# Same names as WidgetType, in the order the query endpoint documents them
ChartType = Literal[
    "time_series_chart",
    "bar_chart",
    "pie_chart",
    "scatter_plot",
    "data_table",
    "count_chart",
    "tree_chart",
    "top_list_chart",
    "heatmap_chart",
    "hexagon_chart",
    "query_value",
]
MetricsDataType = Literal["metrics", "filters", "groupby"]
MetricsWidgetType = Literal["timeseries", "list", "queryValue"]
Visibility = Literal["public", "private"]
IncidentStatus = Literal["all", "for_review", "resolved", "reviewed", "ignored"]

DEFAULT_AGGREGATION: AggregationMethod = "any"
DEFAULT_ROLLUP: RollupMethod = "none"


class InputModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ColumnConfig(InputModel):
    name: str = Field(
        min_length=1,
        description=(
            "The metric or metric attribute name "
            "(e.g., 'k8s.node.cpu.utilization', 'host.memory.usage')"
        ),
    )
    aggregation_method: AggregationMethod = Field(
        default=DEFAULT_AGGREGATION,
        description=(
            "Aggregation method to apply to this column. Supported values: avg, "
            "sum, min, max, any (default), uniq, count, group. If empty or 'any', "
            "no aggregation is applied."
        ),
    )
    rollup_method: RollupMethod = Field(
        default=DEFAULT_ROLLUP,
        description=(
            "Rollup method to apply to this column. Supported values: avg, sum, "
            "min, max, any (default), uniq, count, group, none. If empty, 'none', "
            "or 'any', no rollup is applied."
        ),
    )

    @field_validator("aggregation_method", mode="before")
    @classmethod
    def _default_aggregation(cls, value: Any) -> Any:
        return value or DEFAULT_AGGREGATION

    @field_validator("rollup_method", mode="before")
    @classmethod
    def _default_rollup(cls, value: Any) -> Any:
        return value or DEFAULT_ROLLUP


class BuilderConfigItemInput(InputModel):
    columns: list[ColumnConfig] = Field(
        description=(
            "Array of column configurations, each specifying metric/attribute "
            "name and its aggregation/rollup methods. Each column can have "
            "different aggregation and rollup settings."
        ),
    )
    source: BuilderConfigSource | None = Field(
        default=None,
        description=(
            "Data source configuration with name, alias, and dataset_id. "
            "IMPORTANT: source.name MUST be a resource type returned by the "
            "get_resources tool (e.g. 'host', 'container', 'k8s.pod'). Do not "
            "use arbitrary or guessed resource names."
        ),
    )
    id: str | None = Field(
        default=None,
        description="Unique identifier for this config item (UUID format)",
    )
    meta_data: dict[str, Any] | None = Field(
        default=None, description="Metadata containing metricTypes mapping"
    )
    metric_metadata: dict[str, Any] | None = Field(
        default=None,
        alias="metricMetadata",
        description=(
            "Map of metric names to their metadata. Each key is a metric name "
            '(e.g., "k8s.node.cpu.utilization_percent") and value is the metadata '
            "object with name, label, resource, type, attributes, and config"
        ),
    )
    key: str | None = Field(
        default=None, description="Key identifier for this config item"
    )
    group_by: list[str] | None = Field(
        default=None,
        description=(
            'Array of attribute names to group by (e.g., ["host.cpu.model.id"]). '
            "This will be converted to SELECT_DATA_BY in the 'with' array"
        ),
    )
    filter_with: Any = Field(
        default=None,
        description=(
            "Filter conditions object with 'and' or 'or' arrays (e.g., "
            '{"and": [{"host.id": {"=": "ai-team2"}}, {"host.name": '
            '{"LIKE": "%ai%"}}]}). This will be converted to ATTRIBUTE_FILTER '
            "in the 'with' array"
        ),
    )


class LayoutItemInput(InputModel):
    x: int = Field(
        default=0, ge=0, description="Horizontal position in the grid (0-based index from left)"
    )
    y: int = Field(
        default=0, ge=0, description="Vertical position in the grid (0-based index from top)"
    )
    w: int = Field(
        default=0, description="Width in grid units between 4 and 12 minimum size is 4"
    )
    h: int = Field(
        default=0, description="Height in grid units between 6 and 12 minimum size is 6"
    )
    scope_id: int | None = Field(
        default=None,
        description="The scope ID of the widget to update layout for",
    )


class WidgetDataRequest(InputModel):
    builder_id: int | None = Field(
        default=None, description="The numeric builder ID of the widget"
    )
    key: str | None = Field(
        default=None, description="The unique key identifier of the widget"
    )
    label: str | None = Field(default=None, description="The label of the widget")
    builder_config: list[BuilderConfigItemInput] | None = Field(
        default=None,
        description=(
            "Widget configuration array containing query and display settings. "
            "Each item's columns MUST be an object with name, aggregation_method, "
            "and rollup_method."
        ),
    )
    use_v2: bool = Field(default=False, description="Use v2 data format (default: false)")


class QueryTimeRangeInput(InputModel):
    from_: int = Field(
        alias="from",
        description="Start timestamp in milliseconds (Unix timestamp * 1000)",
    )
    to: int = Field(description="End timestamp in milliseconds (Unix timestamp * 1000)")


class QueryInputItem(InputModel):
    chart_type: ChartType = Field(
        alias="chartType",
        description=(
            "Type of chart/visualization. Must be one of the supported chart "
            "type keys (same as create_widget widget_type)"
        ),
    )
    columns: list[ColumnConfig] = Field(
        description=(
            "Array of column configs: each has 'name' (metric/attribute name, "
            "e.g. 'body', 'timestamp', 'k8s.node.cpu.utilization') and optional "
            "'aggregation_method' and 'rollup_method'. For logs use name only "
            "(e.g. body, timestamp, level). Same format as create_widget columns."
        ),
    )
    resources: list[str] = Field(
        description=(
            "Array of resource types to query. For logs, always use ['log']. For "
            "other data types FIRST use get_resources to discover available "
            "resources, THEN use those resource types here."
        ),
    )
    time_range: QueryTimeRangeInput = Field(
        alias="timeRange",
        description="Time range for the query with from and to timestamps in milliseconds",
    )
    filters: dict[str, Any] | None = Field(
        default=None,
        description=(
            'Optional filters to apply. Format: {"field.name": {"=": "value"}} '
            'or {"field.name": {"!=": "value"}}'
        ),
    )
    group_by: list[str] | None = Field(
        default=None,
        alias="groupBy",
        description=(
            "Optional array of field names to group results by "
            "(e.g., ['container.id', 'service.name'])"
        ),
    )
