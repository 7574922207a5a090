"""Widget query and configuration builders.

Turns the structured tool inputs into the shapes the widget builder API
expects: column expressions such as ``avg(cpu, value(sum))``, ``with``
clauses for grouping and filtering, grid layouts clamped to the minimum
widget size, and complete widget definitions.

Everything here is pure apart from :func:`generate_widget_key`, which
reads the clock.
"""

import re
import time
from collections.abc import Iterable, Sequence
from types import MappingProxyType
from typing import Any

from loguru import logger

from .models import (
    BUILDER_CONFIG_WITH_KEY_ATTRIBUTE_FILTER,
    BUILDER_CONFIG_WITH_KEY_SELECT_DATA_BY,
    BuilderConfigItem,
    BuilderConfigWith,
    BuilderViewOptions,
    CustomWidget,
    LayoutItem,
    ReportView,
)
from .schemas import BuilderConfigItemInput, ColumnConfig, LayoutItemInput

# Minimum widget size enforced by the dashboard grid
MIN_LAYOUT_WIDTH = 4
MIN_LAYOUT_HEIGHT = 6

DEFAULT_WIDGET_APP_ID = 1

WIDGET_APP_IDS = MappingProxyType(
    {
        "time_series_chart": 1,
        "bar_chart": 2,
        "pie_chart": 3,
        "scatter_plot": 4,
        "data_table": 5,
        "count_chart": 7,
        "tree_chart": 8,
        "top_list_chart": 9,
        "heatmap_chart": 10,
        "hexagon_chart": 11,
        "query_value": 12,
    }
)

_NO_AGGREGATION = frozenset({"", "any"})
_NO_ROLLUP = frozenset({"", "none", "any"})
_KEY_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]")


def build_column_expression(
    name: str, aggregation: str | None = "", rollup: str | None = ""
) -> str:
    """Render one column as a query expression.

    Without an aggregation (empty or ``any``) the bare name is returned and
    the rollup is ignored. An aggregation with no rollup (empty, ``none`` or
    ``any``) yields ``agg(name)``; otherwise ``agg(name, value(rollup))``.

    ``name`` is not escaped.
    """
    aggregation = aggregation or ""
    rollup = rollup or ""
    if aggregation in _NO_AGGREGATION:
        return name
    if rollup in _NO_ROLLUP:
        return f"{aggregation}({name})"
    return f"{aggregation}({name}, value({rollup}))"


def transform_columns(columns: Iterable[ColumnConfig]) -> list[str]:
    """Render columns in order, one expression per column."""
    return [
        build_column_expression(col.name, col.aggregation_method, col.rollup_method)
        for col in columns
    ]


def generate_widget_key(label: str) -> str:
    """Generate a widget key like ``cpu_usage_123456789`` from a label."""
    cleaned = _KEY_UNSAFE_CHARS.sub("_", label).lower()
    return f"{cleaned}_{time.time_ns() % 1_000_000_000}"


def get_widget_app_id(widget_type: str) -> int:
    """Map a widget type name to its widget app id.

    Unknown names map to the time series chart id.
    """
    app_id = WIDGET_APP_IDS.get(widget_type)
    if app_id is None:
        logger.warning(
            f"Unknown widget type {widget_type!r}, using time_series_chart"
        )
        return DEFAULT_WIDGET_APP_ID
    return app_id


def normalize_dimensions(w: int, h: int) -> tuple[int, int]:
    return max(w, MIN_LAYOUT_WIDTH), max(h, MIN_LAYOUT_HEIGHT)


def normalize_layout(layout: LayoutItemInput | LayoutItem | None) -> LayoutItem:
    """Return a layout raised to the minimum widget size.

    A missing layout becomes ``{x: 0, y: 0, w: 4, h: 6}``. Position and
    scope id are kept as given.
    """
    if layout is None:
        return LayoutItem(x=0, y=0, w=MIN_LAYOUT_WIDTH, h=MIN_LAYOUT_HEIGHT)
    w, h = normalize_dimensions(layout.w, layout.h)
    return LayoutItem(x=layout.x, y=layout.y, w=w, h=h, scope_id=layout.scope_id)


def build_with_clauses(
    group_by: Sequence[str] | None, filter_with: Any = None
) -> list[BuilderConfigWith]:
    """Lower group-by and filter inputs into ``with`` clause entries.

    Group-by comes first when both are present.
    """
    clauses = []
    if group_by:
        clauses.append(
            BuilderConfigWith(
                key=BUILDER_CONFIG_WITH_KEY_SELECT_DATA_BY,
                value=list(group_by),
                is_arg=True,
            )
        )
    if filter_with is not None:
        clauses.append(
            BuilderConfigWith(
                key=BUILDER_CONFIG_WITH_KEY_ATTRIBUTE_FILTER,
                value=filter_with,
                is_arg=True,
            )
        )
    return clauses


def _first_metric_metadata(metric_metadata: dict[str, Any] | None) -> Any:
    # The builder API takes a single metadata object per config item
    if not metric_metadata:
        return None
    return next(iter(metric_metadata.values()))


def convert_builder_config(
    items: Iterable[BuilderConfigItemInput],
) -> list[BuilderConfigItem]:
    """Convert tool config items into builder API config items."""
    return [
        BuilderConfigItem(
            with_=build_with_clauses(item.group_by, item.filter_with),
            columns=transform_columns(item.columns),
            source=item.source,
            id=item.id,
            meta_data=item.meta_data,
            metric_metadata=_first_metric_metadata(item.metric_metadata),
            key=item.key,
        )
        for item in items
    ]


def build_view_options(
    report_id: int | None = None,
    report_key: str | None = None,
    report_name: str | None = None,
    report_description: str | None = None,
    report_metadata: Any = None,
    disable_user_edit: bool = False,
) -> BuilderViewOptions | None:
    """Build the view options pointing a widget at its dashboard.

    Returns None unless a report id, key or name is given.
    """
    if not ((report_id or 0) > 0 or report_key or report_name):
        return None
    return BuilderViewOptions(
        disable_user_edit=disable_user_edit,
        report=ReportView(
            report_id=report_id if report_id and report_id > 0 else None,
            report_key=report_key or None,
            report_name=report_name or None,
            report_description=report_description or None,
            metadata=report_metadata,
        ),
    )


def assemble_widget(
    label: str,
    widget_type: str,
    builder_config: Iterable[BuilderConfigItemInput],
    key: str | None = None,
    description: str | None = None,
    layout: LayoutItemInput | None = None,
    view_options: BuilderViewOptions | None = None,
) -> CustomWidget:
    """Assemble the definition of a new widget."""
    return CustomWidget(
        label=label,
        key=key or generate_widget_key(label),
        description=description or None,
        builder_config=convert_builder_config(builder_config),
        builder_view_options=view_options,
        widget_app_id=get_widget_app_id(widget_type),
        layout=normalize_layout(layout),
        # Fixed values for widgets created through this server
        builder_id=-1,
        scope_id=-1,
        is_clone=False,
        category="Metrics",
        formulas=[],
        dont_refresh_data=False,
    )
