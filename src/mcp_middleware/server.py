"""FastMCP server for the Middleware.io observability platform.

This module provides a Model Context Protocol (MCP) server that exposes
Middleware.io's REST API as tools for AI assistants: dashboards, widgets,
metric discovery and queries, alerts, and error incidents.

The server provides 22 tools across these categories:
- Dashboard management (list, get, create, update, delete, clone, favorite)
- Widget management and widget data
- Metric, filter and group-by discovery, resources and raw queries
- Alert history, manual alerts and alert statistics
- Error/incident listing and details

Example:
    To run the server, ensure environment variables are set:

    ```bash
    export MIDDLEWARE_BASE_URL="https://acme.middleware.io"
    export MIDDLEWARE_API_KEY="your-api-key"
    uv run mcp-middleware
    ```
"""

import argparse
import os
import sys
from collections.abc import Callable, Iterable
from functools import wraps
from typing import Annotated, Any

from fastmcp import FastMCP
from loguru import logger
from pydantic import Field

from .builder import (
    assemble_widget,
    build_view_options,
    convert_builder_config,
    generate_widget_key,
    get_widget_app_id,
    normalize_layout,
    transform_columns,
)
from .client import (
    MiddlewareAPIError,
    MiddlewareClient,
    MiddlewareConnectionError,
    MiddlewareResponseError,
)
from .config import VALID_APP_MODES, Config, ConfigError
from .models import (
    CustomWidget,
    LayoutRequest,
    MetricsV2Request,
    NewAlert,
    Query,
    QueryRequest,
    QueryTimeRange,
    UpsertReportRequest,
)
from .schemas import (
    BuilderConfigItemInput,
    IncidentStatus,
    LayoutItemInput,
    MetricsDataType,
    MetricsWidgetType,
    QueryInputItem,
    Visibility,
    WidgetDataRequest,
    WidgetType,
)

# stdout carries the stdio transport, so logs go to stderr
logger.remove()
logger.add(sys.stderr, level=os.getenv("FASTMCP_LOG_LEVEL", "WARNING"))

SERVER_NAME = "mcp-middleware"
SHUTDOWN_TIMEOUT_SECONDS = 10

# APP_MODE value -> FastMCP transport name
HTTP_TRANSPORTS = {
    "http": "streamable-http",
    "sse": "sse",
}

INSTRUCTIONS = (
    "Tools for the Middleware.io observability platform. Discover resources "
    "with get_resources and metrics with get_metrics before building widgets "
    "or queries; source names and metric names must come from those tools."
)


def _error(message: str, error_type: str) -> dict[str, Any]:
    return {"success": False, "error": message, "error_type": error_type}


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator to handle common errors in tool implementations."""

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> dict[str, Any]:
        try:
            return await func(*args, **kwargs)  # type: ignore[no-any-return]
        except ValueError as e:
            # Missing configuration or invalid input
            return _error(str(e), "validation")
        except MiddlewareAPIError as e:
            if e.status_code in (401, 403):
                return _error(str(e), "authentication")
            return _error(str(e), "api_error")
        except MiddlewareResponseError as e:
            return _error(str(e), "invalid_response")
        except MiddlewareConnectionError as e:
            return _error(str(e), "connection")
        except Exception as e:
            logger.exception(f"Unexpected error in {func.__name__}")
            return _error(f"Unexpected error: {str(e)}", "unknown")

    return wrapper


# Client instance (created lazily)
_client: MiddlewareClient | None = None


def get_client() -> MiddlewareClient:
    """Get or create the client instance.

    Raises:
        ValueError: If the Middleware credentials are not configured.
    """
    global _client
    if _client is None:
        try:
            _client = MiddlewareClient.from_config(Config.load())
        except ConfigError as e:
            raise ValueError(
                "Middleware credentials not configured. "
                "Please set MIDDLEWARE_BASE_URL and MIDDLEWARE_API_KEY "
                f"({e})"
            ) from e
    return _client


def set_client(client: MiddlewareClient | None) -> None:
    global _client
    _client = client


# Dashboard Tools


@handle_errors
async def list_dashboards_impl(
    limit: int | None = None,
    offset: int | None = None,
    search: str | None = None,
    filter_by: str | None = None,
    display_scope: str | None = None,
) -> dict[str, Any]:
    """List dashboards."""
    result = await get_client().get_dashboards(
        limit=limit,
        offset=offset,
        search=search,
        filter_by=filter_by,
        display_scope=display_scope,
    )
    return {**result.to_wire(), "success": True}


async def list_dashboards(
    limit: Annotated[
        int | None, Field(description="Number of items per page for pagination")
    ] = None,
    offset: Annotated[
        int | None,
        Field(description="Number of items to skip for pagination (page offset)"),
    ] = None,
    search: Annotated[
        str | None,
        Field(description="Search query to find dashboards by name or description"),
    ] = None,
    filter_by: Annotated[
        str | None,
        Field(
            description=(
                "Comma-separated list of filter values. Valid values: custom, "
                "created_by_you, favorite, frequently_viewed, or data source "
                "names like aws, mysql, postgresql, etc."
            )
        ),
    ] = None,
    display_scope: Annotated[
        str | None,
        Field(description="Filter dashboards by comma-separated list of display scopes"),
    ] = None,
) -> dict[str, Any]:
    """Get a list of dashboards (i.e. reports) with filtering and pagination.

    Retrieves dashboards from Middleware.io with support for searching,
    filtering by ownership and usage, and pagination. Use this to discover
    available dashboards or find a specific dashboard by name.
    """
    return await list_dashboards_impl(  # type: ignore[no-any-return]
        limit, offset, search, filter_by, display_scope
    )


@handle_errors
async def get_dashboard_impl(report_key: str) -> dict[str, Any]:
    """Get a dashboard by key."""
    result = await get_client().get_dashboard_by_key(report_key)
    return {**result.to_wire(), "success": True}


async def get_dashboard(
    report_key: Annotated[
        str, Field(description="The unique key identifier of the dashboard to retrieve")
    ],
) -> dict[str, Any]:
    """Get detailed information about a specific dashboard by its unique key.

    Retrieves the complete dashboard configuration including widgets,
    layout, metadata and settings.
    """
    return await get_dashboard_impl(report_key)  # type: ignore[no-any-return]


@handle_errors
async def create_dashboard_impl(
    label: str,
    visibility: str,
    description: str | None = None,
    key: str | None = None,
) -> dict[str, Any]:
    """Create a dashboard."""
    request = UpsertReportRequest(
        label=label,
        visibility=visibility,
        description=description or None,
        display_scope="",
        key=key or None,
    )
    dashboard = await get_client().create_dashboard(request)
    return {
        "success": True,
        "message": "Dashboard created successfully",
        "dashboard": dashboard.to_wire(),
    }


LabelField = Annotated[
    str,
    Field(
        min_length=3,
        description="The dashboard name/title. Must be at least 3 characters long",
    ),
]
VisibilityField = Annotated[
    Visibility,
    Field(
        description=(
            "Dashboard visibility setting. Must be either 'public' (shared with "
            "team) or 'private' (personal only)"
        )
    ),
]


async def create_dashboard(
    label: LabelField,
    visibility: VisibilityField,
    description: Annotated[
        str | None,
        Field(description="Optional detailed description of the dashboard's purpose and contents"),
    ] = None,
    key: Annotated[
        str | None,
        Field(
            description=(
                "Optional unique key identifier for the dashboard. If not "
                "provided, will be auto-generated"
            )
        ),
    ] = None,
) -> dict[str, Any]:
    """Create a new custom dashboard in Middleware.io.

    Dashboards can be public (shared with the team) or private (personal).
    """
    return await create_dashboard_impl(  # type: ignore[no-any-return]
        label, visibility, description, key
    )


@handle_errors
async def update_dashboard_impl(
    id: int,
    label: str,
    visibility: str,
    description: str | None = None,
    key: str | None = None,
) -> dict[str, Any]:
    """Update a dashboard."""
    request = UpsertReportRequest(
        id=id,
        label=label,
        visibility=visibility,
        description=description or None,
        display_scope="",
        key=key or None,
    )
    dashboard = await get_client().update_dashboard(id, request)
    return {
        "success": True,
        "message": "Dashboard updated successfully",
        "dashboard": dashboard.to_wire(),
    }


async def update_dashboard(
    id: Annotated[int, Field(description="The numeric ID of the dashboard to update")],
    label: LabelField,
    visibility: VisibilityField,
    description: Annotated[
        str | None, Field(description="Updated description of the dashboard")
    ] = None,
    key: Annotated[
        str | None,
        Field(
            description=(
                "Updated unique key identifier. Must be unique across all dashboards"
            )
        ),
    ] = None,
) -> dict[str, Any]:
    """Update an existing dashboard's configuration and metadata.

    Renames a dashboard, changes its description or its sharing settings.
    """
    return await update_dashboard_impl(  # type: ignore[no-any-return]
        id, label, visibility, description, key
    )


@handle_errors
async def delete_dashboard_impl(id: int) -> dict[str, Any]:
    """Delete a dashboard."""
    await get_client().delete_dashboard(id)
    return {"success": True, "message": "Dashboard deleted successfully"}


async def delete_dashboard(
    id: Annotated[
        int, Field(description="The numeric ID of the dashboard to delete permanently")
    ],
) -> dict[str, Any]:
    """Permanently delete a dashboard and all its widgets.

    Warning: This action cannot be undone.
    """
    return await delete_dashboard_impl(id)  # type: ignore[no-any-return]


@handle_errors
async def clone_dashboard_impl(
    label: str,
    visibility: str,
    description: str | None = None,
    source_key: str | None = None,
) -> dict[str, Any]:
    """Clone a dashboard."""
    request = UpsertReportRequest(
        label=label,
        visibility=visibility,
        description=description or None,
        display_scope="",
        key=source_key or None,
    )
    dashboard = await get_client().clone_dashboard(request)
    return {
        "success": True,
        "message": "Dashboard cloned successfully",
        "dashboard": dashboard.to_wire(),
    }


async def clone_dashboard(
    label: LabelField,
    visibility: VisibilityField,
    description: Annotated[
        str | None, Field(description="Optional description for the cloned dashboard")
    ] = None,
    source_key: Annotated[
        str | None,
        Field(description="The unique key of the source dashboard to clone from"),
    ] = None,
) -> dict[str, Any]:
    """Create a copy of an existing dashboard with all its widgets.

    The cloned dashboard gets a new ID and may use a different visibility.
    """
    return await clone_dashboard_impl(  # type: ignore[no-any-return]
        label, visibility, description, source_key
    )


@handle_errors
async def set_dashboard_favorite_impl(report_id: int, favorite: bool) -> dict[str, Any]:
    """Set or clear the favorite flag of a dashboard."""
    await get_client().set_dashboard_favorite(report_id, favorite)
    return {"success": True, "message": "Dashboard favorite status updated"}


async def set_dashboard_favorite(
    report_id: Annotated[
        int,
        Field(description="The numeric ID of the dashboard to mark as favorite or unfavorite"),
    ],
    favorite: Annotated[
        bool,
        Field(
            description=(
                "Set to true to add dashboard to favorites, false to remove from favorites"
            )
        ),
    ],
) -> dict[str, Any]:
    """Mark a dashboard as favorite or remove it from favorites.

    Favorited dashboards can be filtered with the 'favorite' filter of
    list_dashboards.
    """
    return await set_dashboard_favorite_impl(report_id, favorite)  # type: ignore[no-any-return]


# Widget Tools


@handle_errors
async def list_widgets_impl(
    report_id: int | None = None, display_scope: str | None = None
) -> dict[str, Any]:
    """List widgets of a dashboard or scope."""
    widgets = await get_client().get_widgets(report_id, display_scope)
    return {"success": True, "widgets": widgets}


async def list_widgets(
    report_id: Annotated[
        int | None,
        Field(description="The numeric ID of the dashboard (report) to filter widgets by"),
    ] = None,
    display_scope: Annotated[
        str | None,
        Field(
            description=(
                "The display scope to filter widgets by (e.g., 'infrastructure', "
                "'apm', 'logs')"
            )
        ),
    ] = None,
    message: Annotated[
        str | None,
        Field(
            description=(
                "Message to know which widgets are being listed. Length should be "
                "less than 100 characters."
            )
        ),
    ] = None,
) -> dict[str, Any]:
    """Get a list of widgets associated with a dashboard or display scope.

    Widgets (charts, graphs, tables) are the building blocks of dashboards.
    Use this to discover the widgets of a dashboard or inspect their
    configuration.
    """
    return await list_widgets_impl(report_id, display_scope)  # type: ignore[no-any-return]


@handle_errors
async def create_widget_impl(
    label: str,
    widget_type: str,
    builder_config: list[BuilderConfigItemInput],
    layout: LayoutItemInput | None = None,
    key: str | None = None,
    description: str | None = None,
    report_id: int | None = None,
    report_key: str | None = None,
    report_name: str | None = None,
    report_description: str | None = None,
    report_metadata: Any = None,
    disable_user_edit: bool = False,
) -> dict[str, Any]:
    """Create a widget."""
    widget = assemble_widget(
        label=label,
        widget_type=widget_type,
        builder_config=builder_config,
        key=key,
        description=description,
        layout=layout,
        view_options=build_view_options(
            report_id,
            report_key,
            report_name,
            report_description,
            report_metadata,
            disable_user_edit,
        ),
    )
    result = await get_client().create_widget(widget)
    return {
        "success": True,
        "message": "Widget created successfully",
        "widget": result.to_wire(),
    }


BuilderConfigField = Annotated[
    list[BuilderConfigItemInput],
    Field(
        description=(
            "Widget configuration array containing queries, chart type, display "
            "settings, and data sources. Each item should have: columns, source, "
            "id, meta_data, metricMetadata, key, group_by, and filter_with"
        )
    ),
]
LayoutField = Annotated[
    LayoutItemInput | None,
    Field(
        description=(
            "Layout for the widget including coordinates and size. Based on the "
            "widget type, you MUST set proper layout. Width (w) must be minimum 4 "
            "(strict minimum requirement) and height (h) must be minimum 6 (strict "
            "minimum requirement)"
        )
    ),
]
WidgetKeyField = Annotated[
    str | None, Field(description="Optional unique key identifier for the widget")
]
WidgetDescriptionField = Annotated[
    str | None,
    Field(description="Optional description explaining what the widget displays"),
]
ReportKeyField = Annotated[
    str | None,
    Field(description="The unique key identifier of the dashboard (report) of the widget"),
]
ReportNameField = Annotated[
    str | None, Field(description="The name of the dashboard (report) of the widget")
]
ReportDescriptionField = Annotated[
    str | None, Field(description="Optional description of the dashboard (report)")
]
ReportMetadataField = Annotated[
    Any, Field(description="Optional metadata for the dashboard (report)")
]
DisableUserEditField = Annotated[
    bool,
    Field(description="Whether to disable user editing of the widget (default: false)"),
]


async def create_widget(
    label: Annotated[
        str,
        Field(description="The display name for the widget (e.g., 'CPU Usage', 'Error Rate')"),
    ],
    widget_type: Annotated[
        WidgetType, Field(description="The type of chart/widget to create")
    ],
    builderConfig: BuilderConfigField,  # noqa: N803
    report_id: Annotated[
        int,
        Field(
            description=(
                "The numeric ID of the dashboard ID (Report ID) where this widget "
                "will be created"
            )
        ),
    ],
    layout: LayoutField,
    key: WidgetKeyField = None,
    description: WidgetDescriptionField = None,
    report_key: ReportKeyField = None,
    report_name: ReportNameField = None,
    report_description: ReportDescriptionField = None,
    report_metadata: ReportMetadataField = None,
    disable_user_edit: DisableUserEditField = False,
) -> dict[str, Any]:
    """Create a new widget on a dashboard.

    Creation workflow:
    1. Identify the resource: use 'get_resources' to find available resource
       types (e.g. 'host', 'container').
    2. Identify metrics: use 'get_metrics' to find the metrics of that
       resource, and check the supported 'filters' and 'groupby' tags of each
       metric before using them.
    3. Build the builderConfig from the discovered resource and metrics.

    builderConfig items:
    - 'source.name' MUST be an exact resource type returned by get_resources.
    - 'columns' is an array of objects with 'name' and optional
      'aggregation_method' (avg, sum, min, max, any, uniq, count, group) and
      'rollup_method' (avg, sum, min, max, any, uniq, count, group, none).
    - 'group_by' (optional) lists dimensions discovered with
      get_metrics data_type='groupby'.
    - 'filter_with' (optional) holds conditions on dimensions discovered
      with get_metrics data_type='filters'.

    The 'report_id' places the widget on a dashboard. Layout width (w) must
    be at least 4 and height (h) at least 6; smaller values are raised to
    the minimum.
    """
    return await create_widget_impl(  # type: ignore[no-any-return]
        label=label,
        widget_type=widget_type,
        builder_config=builderConfig,
        layout=layout,
        key=key,
        description=description,
        report_id=report_id,
        report_key=report_key,
        report_name=report_name,
        report_description=report_description,
        report_metadata=report_metadata,
        disable_user_edit=disable_user_edit,
    )


@handle_errors
async def update_widget_impl(
    builder_id: int,
    layout: LayoutItemInput | None = None,
    label: str | None = None,
    widget_type: str | None = None,
    key: str | None = None,
    description: str | None = None,
    builder_config: list[BuilderConfigItemInput] | None = None,
    report_id: int | None = None,
    report_key: str | None = None,
    report_name: str | None = None,
    report_description: str | None = None,
    report_metadata: Any = None,
    disable_user_edit: bool = False,
) -> dict[str, Any]:
    """Update a widget."""
    if builder_id <= 0:
        raise ValueError("builder_id is required for updating a widget")

    if not key and label:
        key = generate_widget_key(label)

    widget = CustomWidget(
        builder_id=builder_id,
        label=label or None,
        key=key or None,
        description=description or None,
        builder_config=convert_builder_config(builder_config) if builder_config else None,
        builder_view_options=build_view_options(
            report_id,
            report_key,
            report_name,
            report_description,
            report_metadata,
            disable_user_edit,
        ),
    )
    if widget_type:
        widget.widget_app_id = get_widget_app_id(widget_type)
    if layout is not None:
        widget.layout = normalize_layout(layout)

    result = await get_client().update_widget(widget)
    return {
        "success": True,
        "message": "Widget updated successfully",
        "widget": result.to_wire(),
    }


async def update_widget(
    builder_id: Annotated[
        int,
        Field(description="The widget ID (builder ID) of the widget that needs to be updated"),
    ],
    layout: LayoutField,
    label: Annotated[
        str | None,
        Field(description="The display name for the widget (e.g., 'CPU Usage', 'Error Rate')"),
    ] = None,
    widget_type: Annotated[
        WidgetType | None, Field(description="The type of chart/widget")
    ] = None,
    key: WidgetKeyField = None,
    description: WidgetDescriptionField = None,
    builderConfig: Annotated[  # noqa: N803
        list[BuilderConfigItemInput] | None,
        Field(
            description=(
                "Updated widget configuration array. Same format as the "
                "create_widget builderConfig"
            )
        ),
    ] = None,
    report_id: Annotated[
        int | None,
        Field(
            description=(
                "The numeric ID of the dashboard ID (Report ID) where this widget belongs"
            )
        ),
    ] = None,
    report_key: ReportKeyField = None,
    report_name: ReportNameField = None,
    report_description: ReportDescriptionField = None,
    report_metadata: ReportMetadataField = None,
    disable_user_edit: DisableUserEditField = False,
) -> dict[str, Any]:
    """Update an existing widget on a dashboard.

    The builder_id (widget ID) is REQUIRED; get it from list_widgets or from
    the create_widget response. builderConfig follows the create_widget
    format, and its 'source.name' MUST be a resource type returned by
    get_resources. Layout width (w) must be at least 4 and height (h) at
    least 6; smaller values are raised to the minimum.
    """
    return await update_widget_impl(  # type: ignore[no-any-return]
        builder_id=builder_id,
        layout=layout,
        label=label,
        widget_type=widget_type,
        key=key,
        description=description,
        builder_config=builderConfig,
        report_id=report_id,
        report_key=report_key,
        report_name=report_name,
        report_description=report_description,
        report_metadata=report_metadata,
        disable_user_edit=disable_user_edit,
    )


@handle_errors
async def delete_widget_impl(builder_id: int) -> dict[str, Any]:
    """Delete a widget."""
    await get_client().delete_widget(builder_id)
    return {"success": True, "message": "Widget deleted successfully"}


async def delete_widget(
    builder_id: Annotated[
        int,
        Field(description="The numeric builder ID of the widget to delete permanently"),
    ],
    message: Annotated[
        str | None, Field(description="Message to know which widget is being deleted.")
    ] = None,
    widget_label: Annotated[
        str | None, Field(description="Label of the widget to delete.")
    ] = None,
) -> dict[str, Any]:
    """Permanently delete a widget from a dashboard.

    Warning: This action cannot be undone.
    """
    return await delete_widget_impl(builder_id)  # type: ignore[no-any-return]


def _data_widget(request: WidgetDataRequest) -> CustomWidget:
    return CustomWidget(
        builder_id=request.builder_id or None,
        key=request.key or None,
        label=request.label or None,
        builder_config=(
            convert_builder_config(request.builder_config)
            if request.builder_config
            else None
        ),
        use_v2=request.use_v2 or None,
    )


@handle_errors
async def get_widget_data_impl(request: WidgetDataRequest) -> dict[str, Any]:
    """Fetch the data of one widget."""
    data = await get_client().get_widget_data(_data_widget(request))
    return {"success": True, "data": data.to_wire()}


async def get_widget_data(
    builder_id: Annotated[
        int | None,
        Field(description="The numeric builder ID of the widget to fetch data for"),
    ] = None,
    key: Annotated[
        str | None,
        Field(description="Alternative to builder_id: the unique key identifier of the widget"),
    ] = None,
    label: Annotated[
        str | None, Field(description="Alternative to builder_id: the label of the widget")
    ] = None,
    builder_config: Annotated[
        list[BuilderConfigItemInput] | None,
        Field(
            description=(
                "Widget configuration array containing the query and data source "
                "settings. Each item's columns MUST be an object with name, "
                "aggregation_method, and rollup_method."
            )
        ),
    ] = None,
    use_v2: Annotated[
        bool,
        Field(description="Set to true to use the newer v2 data format (default: false)"),
    ] = False,
) -> dict[str, Any]:
    """Fetch the data and metrics displayed by a specific widget.

    Executes the widget's query and returns the visualization data (time
    series, metrics, logs, traces). The data format depends on the widget
    type.
    """
    request = WidgetDataRequest(
        builder_id=builder_id,
        key=key,
        label=label,
        builder_config=builder_config,
        use_v2=use_v2,
    )
    return await get_widget_data_impl(request)  # type: ignore[no-any-return]


@handle_errors
async def get_multi_widget_data_impl(
    widgets: list[WidgetDataRequest],
) -> dict[str, Any]:
    """Fetch the data of several widgets in one request."""
    results = await get_client().get_multi_widget_data(
        [_data_widget(w) for w in widgets]
    )
    return {"success": True, "widgets": [r.to_wire() for r in results]}


async def get_multi_widget_data(
    widgets: Annotated[
        list[WidgetDataRequest],
        Field(
            description=(
                "Array of widget specifications to fetch data for. Each widget can "
                "be identified by builder_id, key, or label"
            )
        ),
    ],
) -> dict[str, Any]:
    """Fetch data for multiple widgets in a single request.

    Use this when refreshing a whole dashboard instead of calling
    get_widget_data for each widget.
    """
    return await get_multi_widget_data_impl(widgets)  # type: ignore[no-any-return]


@handle_errors
async def update_widget_layouts_impl(
    layouts: list[LayoutItemInput], operation_message: str | None = None
) -> dict[str, Any]:
    """Apply a batch of widget layouts."""
    request = LayoutRequest(layouts=[normalize_layout(layout) for layout in layouts])
    await get_client().update_widget_layouts(request)
    return {
        "success": True,
        "message": operation_message or "Widget layouts updated successfully",
    }


async def update_widget_layouts(
    layouts: Annotated[
        list[LayoutItemInput],
        Field(
            description=(
                "Array of layout specifications for each widget. Each item defines "
                "position and size in the dashboard grid. Width (w) must be minimum "
                "4 (strict minimum requirement) and height (h) must be minimum 6 "
                "(strict minimum requirement)"
            )
        ),
    ],
    message: Annotated[
        str | None,
        Field(
            description=(
                "Message to know which widgets are being updated. Length should be "
                "less than 100 characters."
            )
        ),
    ] = None,
    operation_message: Annotated[
        str | None,
        Field(
            description=(
                "Message to know the operation being completed. Example: 'Updating "
                "widget CPU Usage layouts successfully' Length should be less than "
                "100 characters."
            )
        ),
    ] = None,
) -> dict[str, Any]:
    """Update the position and size of widgets on a dashboard.

    The dashboard uses a grid where x,y are the position and w,h the size in
    grid units. Width (w) must be at least 4 and height (h) at least 6;
    smaller values are raised to the minimum.
    """
    return await update_widget_layouts_impl(  # type: ignore[no-any-return]
        layouts, operation_message
    )


# Metrics Tools


@handle_errors
async def get_metrics_impl(
    data_type: str,
    widget_type: str,
    resources: list[str] | None = None,
    metric: str | None = None,
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
) -> dict[str, Any]:
    """Discover metrics, filters or group-by tags."""
    if data_type == "groupby" and not metric:
        raise ValueError("metric is required when data_type is 'groupby'")
    request = MetricsV2Request(
        data_type=data_type,
        widget_type=widget_type,
        resources=resources or None,
        metric=metric or None,
        page=page or None,
        limit=limit or None,
        search=search or None,
    )
    result = await get_client().get_metrics(request)
    return {**result.to_wire(), "success": True}


async def get_metrics(
    data_type: Annotated[
        MetricsDataType,
        Field(
            description=(
                "Type of data to fetch. Must be one of: 'metrics' (metric names), "
                "'filters' (filter dimensions), 'groupby' (grouping tags)"
            )
        ),
    ],
    widget_type: Annotated[
        MetricsWidgetType,
        Field(
            description=(
                "Widget type for the query. Must be one of: 'timeseries' (for "
                "timeseries, bar, stackbar, area), 'list' (for table, pie, scatter, "
                "tree, toplist, hexagon), or 'queryValue' (for queryvalue)"
            )
        ),
    ],
    resources: Annotated[
        list[str] | None,
        Field(
            description=(
                "Array of resource type names obtained from calling get_resources "
                "(e.g., ['host', 'container', 'trace']). Only use names returned "
                "by get_resources."
            )
        ),
    ] = None,
    metric: Annotated[
        str | None,
        Field(
            description=(
                "Specific metric name. REQUIRED when data_type is 'groupby' to get "
                "the grouping dimensions of that metric."
            )
        ),
    ] = None,
    page: Annotated[
        int | None, Field(description="Page number for paginated results (default: 1)")
    ] = None,
    limit: Annotated[
        int | None,
        Field(description="Number of items per page (default: 100, max: varies by data type)"),
    ] = None,
    search: Annotated[
        str | None,
        Field(
            description=(
                "Search term to filter metrics or resources by name "
                "(case-insensitive substring match)"
            )
        ),
    ] = None,
) -> dict[str, Any]:
    """Get available metrics, filters, or groupby tags for building queries.

    Filters and groupby tags are not universal; they vary by metric.

    Discovery workflow:
    1. Identify available resources with 'get_resources'.
    2. List metrics of a resource: data_type='metrics' with 'resources'.
    3. Explore dimensions of a metric:
       - grouping: data_type='groupby' AND the specific 'metric' name
       - filtering: data_type='filters' (optionally with 'resources')
    """
    return await get_metrics_impl(  # type: ignore[no-any-return]
        data_type, widget_type, resources, metric, page, limit, search
    )


@handle_errors
async def get_resources_impl() -> dict[str, Any]:
    """List resource types."""
    resources = await get_client().get_resources()
    return {"success": True, "count": len(resources), "resources": resources}


async def get_resources() -> dict[str, Any]:
    """Get all resource types available in your Middleware.io environment.

    Resources are the monitored entities that have data (e.g. host,
    container, pod, service, database, redis, postgresql, nginx). Use this
    before querying metrics for specific resources.
    """
    return await get_resources_impl()  # type: ignore[no-any-return]


@handle_errors
async def query_impl(queries: list[QueryInputItem]) -> dict[str, Any]:
    """Run raw queries."""
    request = QueryRequest(
        queries=[
            Query(
                chart_type=q.chart_type,
                columns=transform_columns(q.columns),
                resources=q.resources,
                time_range=QueryTimeRange(from_=q.time_range.from_, to=q.time_range.to),
                filters=q.filters,
                group_by=q.group_by,
            )
            for q in queries
        ]
    )
    result = await get_client().query(request)
    return {**result.to_wire(), "success": True}


async def query(
    queries: Annotated[
        list[QueryInputItem],
        Field(
            description=(
                "Array of query objects to execute. Each query can target different "
                "resources and data types"
            )
        ),
    ],
) -> dict[str, Any]:
    """Execute a flexible query for logs, metrics, traces and other data.

    Resource selection:
    - For logs always use ["log"] as the resource.
    - For metrics, traces or other data FIRST call get_resources and use the
      resource types it returns (e.g. ["host"], ["container"], ["trace"]).

    Results can be filtered by any resource attribute and grouped by
    dimensions. Several queries can run in a single request.
    """
    return await query_impl(queries)  # type: ignore[no-any-return]


# Alert Tools


@handle_errors
async def list_alerts_impl(
    rule_id: int, page: int | None = None, order_by: str | None = None
) -> dict[str, Any]:
    """List alerts of a rule."""
    result = await get_client().get_alerts(rule_id, page=page, order_by=order_by)
    return {**result.to_wire(), "success": True}


RuleIdField = Annotated[
    int, Field(description="The numeric ID of the alert rule")
]


async def list_alerts(
    rule_id: RuleIdField,
    page: Annotated[
        int | None,
        Field(
            description=(
                "Page number for pagination. 0-based index (default: 0 for first page)"
            )
        ),
    ] = None,
    order_by: Annotated[
        str | None,
        Field(
            description=(
                "Field name to sort results by (e.g., 'created_at', 'triggered_at', "
                "'status'). Default: 'created_at' in descending order"
            )
        ),
    ] = None,
) -> dict[str, Any]:
    """Get the triggered alerts of an alert rule with pagination and sorting.

    Each alert represents a time when the rule condition was met. Use this
    to review alert history or investigate recent incidents.
    """
    return await list_alerts_impl(rule_id, page, order_by)  # type: ignore[no-any-return]


@handle_errors
async def create_alert_impl(alert: NewAlert) -> dict[str, Any]:
    """Create an alert."""
    result = await get_client().create_alert(alert.rule_id, alert)
    return {
        "success": True,
        "message": "Alert created successfully",
        "alert": result.to_wire(),
    }


async def create_alert(
    rule_id: RuleIdField,
    title: Annotated[
        str,
        Field(
            description=(
                "Alert title/summary describing what triggered (e.g., 'High CPU "
                "Usage on prod-server-01')"
            )
        ),
    ],
    status: Annotated[
        int,
        Field(
            description=(
                "Alert status code. Typically: 0=OK/Resolved, 1=Warning, "
                "2=Critical, 3=Unknown"
            )
        ),
    ],
    message: Annotated[
        str | None,
        Field(description="Detailed alert message with additional context and information"),
    ] = None,
    value: Annotated[
        float | None,
        Field(
            description=(
                "The actual measured value that triggered the alert (e.g., 95.5 for "
                "95.5% CPU usage)"
            )
        ),
    ] = None,
    threshold: Annotated[
        float | None,
        Field(
            description="The threshold value that was exceeded (e.g., 80.0 for 80% threshold)"
        ),
    ] = None,
    operator: Annotated[
        str | None,
        Field(description="Comparison operator used (e.g., '>', '<', '>=', '<=', '==', '!=')"),
    ] = None,
    unit: Annotated[
        str | None,
        Field(
            description=(
                "Unit of measurement for the value (e.g., 'percent', 'ms', "
                "'requests/sec', 'GB')"
            )
        ),
    ] = None,
    attributes: Annotated[
        dict[str, str] | None,
        Field(
            description=(
                "Additional key-value pairs with context (e.g., {'hostname': "
                "'prod-01', 'region': 'us-east-1'})"
            )
        ),
    ] = None,
    project_uid: Annotated[
        str | None,
        Field(description="Project unique identifier if alert is project-specific"),
    ] = None,
    executor_id: Annotated[
        int | None,
        Field(description="ID of the executor/rule evaluator that triggered the alert"),
    ] = None,
    triggered_at: Annotated[
        str | None,
        Field(
            description=(
                "Timestamp when the alert was triggered (ISO 8601 format, e.g., "
                "'2024-01-15T10:30:00Z')"
            )
        ),
    ] = None,
) -> dict[str, Any]:
    """Manually create a new alert instance for an alert rule.

    The alert appears in the rule's alert list and triggers its configured
    notification channels. Alerts are normally created automatically when
    rule conditions are met; use this for custom alerting workflows.
    """
    alert = NewAlert(
        rule_id=rule_id,
        title=title,
        status=status,
        message=message or None,
        value=value,
        threshold=threshold,
        operator=operator or None,
        unit=unit or None,
        attributes=attributes or None,
        project_uid=project_uid or None,
        executor_id=executor_id or None,
        triggered_at=triggered_at or None,
    )
    return await create_alert_impl(alert)  # type: ignore[no-any-return]


@handle_errors
async def get_alert_stats_impl(rule_id: int) -> dict[str, Any]:
    """Get alert statistics of a rule."""
    result = await get_client().get_alert_stats(rule_id)
    return {**result.to_wire(), "success": True}


async def get_alert_stats(rule_id: RuleIdField) -> dict[str, Any]:
    """Get aggregated alert statistics of an alert rule.

    Returns:
    - count by status: number of alerts per status (OK, Warning, Critical)
    - count by title: distribution of alerts by title
    - timeseries by title: alert counts over time grouped by title
    """
    return await get_alert_stats_impl(rule_id)  # type: ignore[no-any-return]


# Error/Incident Tools


@handle_errors
async def list_errors_impl(
    from_ts: int,
    to_ts: int,
    page: int,
    status: str,
    filter: str | None = None,
    search: str | None = None,
) -> dict[str, Any]:
    """List error incidents."""
    result = await get_client().get_incidents(
        from_ts=from_ts,
        to_ts=to_ts,
        page=page if page > 0 else 1,
        filter=filter,
        status=status,
        search=search,
    )
    return {**result.to_wire(), "success": True}


FromTsField = Annotated[
    int, Field(description="Start timestamp in milliseconds (Unix timestamp * 1000)")
]
ToTsField = Annotated[
    int, Field(description="End timestamp in milliseconds (Unix timestamp * 1000)")
]
FilterField = Annotated[
    str | None, Field(description="Optional filter string to narrow down results")
]


async def list_errors(
    from_ts: FromTsField,
    to_ts: ToTsField,
    page: Annotated[
        int, Field(description="Page number for pagination (default: 1)")
    ],
    status: Annotated[IncidentStatus, Field(description="Filter by status")],
    filter: FilterField = None,
    search: Annotated[
        str | None,
        Field(description="Search term to filter incidents by title or description"),
    ] = None,
) -> dict[str, Any]:
    """List all errors/incidents currently happening in the system.

    Results can be filtered by time range, status and search terms, and are
    paginated.

    IMPORTANT: each incident includes an 'issue_url' field linking to the
    issue details page in the Middleware.io web interface
    (https://[base-url]/ops-ai?fingerprint=[fingerprint]). Always include
    this URL when presenting error information to users.
    """
    return await list_errors_impl(  # type: ignore[no-any-return]
        from_ts, to_ts, page, status, filter, search
    )


@handle_errors
async def get_error_details_impl(
    fingerprint: str, from_ts: int, to_ts: int, filter: str | None = None
) -> dict[str, Any]:
    """Get details of one incident."""
    detail = await get_client().get_incident_detail(
        fingerprint, from_ts=from_ts, to_ts=to_ts, filter=filter
    )
    return {
        "success": True,
        "issue_url": get_client().issue_url(fingerprint),
        "incident": detail,
    }


async def get_error_details(
    fingerprint: Annotated[
        str, Field(description="The unique fingerprint identifier of the error/incident")
    ],
    from_ts: FromTsField,
    to_ts: ToTsField,
    filter: FilterField = None,
) -> dict[str, Any]:
    """Get detailed information about an error/incident by its fingerprint.

    Returns the full context and occurrence history of the incident.
    """
    return await get_error_details_impl(  # type: ignore[no-any-return]
        fingerprint, from_ts, to_ts, filter
    )


TOOLS: tuple[Callable[..., Any], ...] = (
    # Dashboards
    list_dashboards,
    get_dashboard,
    create_dashboard,
    update_dashboard,
    delete_dashboard,
    clone_dashboard,
    set_dashboard_favorite,
    # Widgets
    list_widgets,
    create_widget,
    update_widget,
    delete_widget,
    get_widget_data,
    get_multi_widget_data,
    update_widget_layouts,
    # Metrics
    get_metrics,
    get_resources,
    query,
    # Alerts
    list_alerts,
    create_alert,
    get_alert_stats,
    # Errors/incidents
    list_errors,
    get_error_details,
)


def create_server(excluded_tools: Iterable[str] = ()) -> FastMCP:
    """Create the MCP server with every tool not in ``excluded_tools``."""
    excluded = frozenset(excluded_tools)
    server = FastMCP(SERVER_NAME, instructions=INSTRUCTIONS)
    for tool in TOOLS:
        if tool.__name__ in excluded:
            logger.debug(f"Skipping excluded tool {tool.__name__}")
            continue
        server.tool(tool)
    return server


def main() -> None:
    """Run the MCP server.

    Supports multiple transport modes:
    - stdio (default): Standard input/output for MCP client integration
    - http: Streamable HTTP transport
    - sse: Server-Sent Events over HTTP

    The transport, host and port default to APP_MODE, APP_HOST and APP_PORT
    and can be overridden on the command line.
    """
    parser = argparse.ArgumentParser(
        description="MCP Middleware Server - Middleware.io observability platform integration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with stdio (default, for MCP clients like Claude Desktop)
  mcp-middleware

  # Run with Streamable HTTP
  mcp-middleware --transport http --port 8080

  # Using environment variables
  APP_MODE=sse APP_HOST=0.0.0.0 mcp-middleware
        """,
    )
    parser.add_argument(
        "--transport",
        choices=VALID_APP_MODES,
        help="Transport type (default: APP_MODE or stdio)",
    )
    parser.add_argument(
        "--host",
        help="Host to bind for HTTP/SSE transports (default: APP_HOST or localhost)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port to bind for HTTP/SSE transports (default: APP_PORT or 8080)",
    )

    args = parser.parse_args()

    try:
        config = Config.load()
    except ConfigError as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    set_client(MiddlewareClient.from_config(config))
    mcp = create_server(config.excluded_tools)

    transport = args.transport or config.app_mode
    logger.info(f"Middleware MCP Server connected to: {config.base_url}")
    if config.excluded_tools:
        logger.info(f"Excluded tools: {sorted(config.excluded_tools)}")

    if transport == "stdio":
        try:
            mcp.run()
        except KeyboardInterrupt:
            logger.info("Shutting down gracefully...")
        return

    mcp.run(
        transport=HTTP_TRANSPORTS[transport],
        host=args.host or config.app_host,
        port=args.port or config.app_port,
        uvicorn_config={"timeout_graceful_shutdown": SHUTDOWN_TIMEOUT_SECONDS},
    )


if __name__ == "__main__":
    main()
