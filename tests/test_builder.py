"""Tests for widget query and configuration builders."""

import re

import pytest

from mcp_middleware import builder
from mcp_middleware.builder import (
    assemble_widget,
    build_column_expression,
    build_view_options,
    build_with_clauses,
    convert_builder_config,
    generate_widget_key,
    get_widget_app_id,
    normalize_dimensions,
    normalize_layout,
    transform_columns,
)
from mcp_middleware.schemas import BuilderConfigItemInput, ColumnConfig, LayoutItemInput


class TestColumnExpression:
    """Test rendering of column expressions."""

    @pytest.mark.parametrize(
        ("aggregation", "rollup", "expected"),
        [
            ("avg", "sum", "avg(cpu, value(sum))"),
            ("max", "none", "max(cpu)"),
            ("max", "any", "max(cpu)"),
            ("max", "", "max(cpu)"),
            ("any", "sum", "cpu"),
            ("", "sum", "cpu"),
            ("", "", "cpu"),
        ],
    )
    def test_build_column_expression(self, aggregation, rollup, expected):
        assert build_column_expression("cpu", aggregation, rollup) == expected

    def test_none_values_behave_like_empty(self):
        assert build_column_expression("cpu", None, None) == "cpu"

    def test_transform_columns_keeps_order(self):
        columns = [
            ColumnConfig(name="body"),
            ColumnConfig(name="cpu", aggregation_method="avg", rollup_method="max"),
            ColumnConfig(name="mem", aggregation_method="sum"),
        ]
        assert transform_columns(columns) == [
            "body",
            "avg(cpu, value(max))",
            "sum(mem)",
        ]

    def test_empty_methods_take_defaults(self):
        col = ColumnConfig(name="cpu", aggregation_method="", rollup_method="")
        assert col.aggregation_method == "any"
        assert col.rollup_method == "none"
        assert transform_columns([col]) == ["cpu"]

    def test_column_name_required(self):
        with pytest.raises(ValueError):
            ColumnConfig(name="")


class TestWidgetKey:
    """Test widget key generation."""

    def test_key_format(self):
        key = generate_widget_key("CPU Usage!")
        assert re.fullmatch(r"cpu_usage__\d{1,9}", key)

    def test_key_keeps_alphanumerics(self):
        key = generate_widget_key("Host42")
        assert key.startswith("host42_")


class TestWidgetAppId:
    """Test widget type to app id mapping."""

    @pytest.mark.parametrize(
        ("widget_type", "app_id"),
        [
            ("time_series_chart", 1),
            ("bar_chart", 2),
            ("pie_chart", 3),
            ("scatter_plot", 4),
            ("data_table", 5),
            ("count_chart", 7),
            ("tree_chart", 8),
            ("top_list_chart", 9),
            ("heatmap_chart", 10),
            ("hexagon_chart", 11),
            ("query_value", 12),
        ],
    )
    def test_known_types(self, widget_type, app_id):
        assert get_widget_app_id(widget_type) == app_id

    def test_unknown_type_falls_back(self):
        assert get_widget_app_id("sparkline") == builder.DEFAULT_WIDGET_APP_ID

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            builder.WIDGET_APP_IDS["new_chart"] = 99  # type: ignore[index]


class TestLayout:
    """Test layout normalization."""

    @pytest.mark.parametrize(
        ("w", "h", "expected"),
        [
            (0, 0, (4, 6)),
            (2, 3, (4, 6)),
            (4, 6, (4, 6)),
            (12, 8, (12, 8)),
            (6, 2, (6, 6)),
        ],
    )
    def test_normalize_dimensions(self, w, h, expected):
        assert normalize_dimensions(w, h) == expected

    @pytest.mark.parametrize(
        ("w", "h"), [(-5, -1), (0, 0), (3, 5), (4, 6), (5, 7), (12, 12)]
    )
    def test_normalize_dimensions_idempotent(self, w, h):
        once = normalize_dimensions(w, h)
        assert normalize_dimensions(*once) == once
        assert once[0] >= 4 and once[1] >= 6

    def test_normalize_layout_idempotent(self):
        once = normalize_layout(LayoutItemInput(x=1, y=2, w=-3, h=2))
        assert normalize_layout(once) == once

    def test_missing_layout_defaults(self):
        layout = normalize_layout(None)
        assert layout.to_wire() == {"x": 0, "y": 0, "w": 4, "h": 6}

    def test_position_and_scope_preserved(self):
        layout = normalize_layout(LayoutItemInput(x=3, y=5, w=1, h=1, scope_id=77))
        assert layout.to_wire() == {"x": 3, "y": 5, "w": 4, "h": 6, "_scope_id": 77}

    def test_negative_position_rejected(self):
        with pytest.raises(ValueError):
            LayoutItemInput(x=-1)


class TestWithClauses:
    """Test lowering of group-by and filters."""

    def test_group_by_then_filter(self):
        filters = {"and": [{"host.id": {"=": "a"}}]}
        clauses = build_with_clauses(["host.name"], filters)
        assert [c.to_wire() for c in clauses] == [
            {"key": "SELECT_DATA_BY", "value": ["host.name"], "isArg": True},
            {"key": "ATTRIBUTE_FILTER", "value": filters, "isArg": True},
        ]

    def test_empty_inputs_produce_nothing(self):
        assert build_with_clauses(None, None) == []
        assert build_with_clauses([], None) == []

    def test_group_by_only(self):
        clauses = build_with_clauses(["host.id"], None)
        assert [c.to_wire() for c in clauses] == [
            {"key": "SELECT_DATA_BY", "value": ["host.id"], "isArg": True}
        ]

    def test_filter_only(self):
        clauses = build_with_clauses(None, {"or": []})
        assert len(clauses) == 1
        assert clauses[0].key == "ATTRIBUTE_FILTER"


class TestConvertBuilderConfig:
    """Test conversion of tool config items."""

    def test_conversion(self):
        item = BuilderConfigItemInput.model_validate(
            {
                "columns": [
                    {"name": "system.cpu.utilization", "aggregation_method": "avg"}
                ],
                "source": {"name": "host"},
                "metricMetadata": {
                    "system.cpu.utilization": {"name": "system.cpu.utilization"}
                },
                "group_by": ["host.name"],
            }
        )
        [converted] = convert_builder_config([item])
        wire = converted.to_wire()
        assert wire["columns"] == ["avg(system.cpu.utilization)"]
        assert wire["source"] == {"name": "host"}
        assert wire["metricMetadata"] == {"name": "system.cpu.utilization"}
        assert wire["with"] == [
            {"key": "SELECT_DATA_BY", "value": ["host.name"], "isArg": True}
        ]
        assert "group_by" not in wire
        assert "filter_with" not in wire


class TestViewOptions:
    """Test dashboard view options."""

    def test_none_without_report_reference(self):
        assert build_view_options() is None
        assert build_view_options(report_id=0) is None

    def test_report_id(self):
        options = build_view_options(report_id=42, disable_user_edit=True)
        assert options is not None
        assert options.to_wire() == {
            "disableUserEdit": True,
            "report": {"reportId": 42},
        }

    def test_report_name_only(self):
        options = build_view_options(report_name="Infra")
        assert options is not None
        assert options.to_wire()["report"] == {"reportName": "Infra"}


class TestAssembleWidget:
    """Test assembling a complete widget definition."""

    def test_end_to_end(self):
        item = BuilderConfigItemInput.model_validate(
            {
                "columns": [
                    {
                        "name": "system.cpu.utilization",
                        "aggregation_method": "avg",
                        "rollup_method": "max",
                    }
                ],
                "source": {"name": "host"},
                "group_by": ["host.name"],
            }
        )
        widget = assemble_widget(
            label="CPU by host",
            widget_type="bar_chart",
            builder_config=[item],
            layout=LayoutItemInput(x=0, y=0, w=2, h=2),
            view_options=build_view_options(report_id=7),
        )
        wire = widget.to_wire()

        assert wire["builderId"] == -1
        assert wire["scopeId"] == -1
        assert wire["isClone"] is False
        assert wire["category"] == "Metrics"
        assert wire["formulas"] == []
        assert wire["dontRefreshData"] is False
        assert wire["widgetAppId"] == 2
        assert wire["layout"] == {"x": 0, "y": 0, "w": 4, "h": 6}
        assert wire["builderViewOptions"]["report"] == {"reportId": 7}
        assert re.fullmatch(r"cpu_by_host_\d+", wire["key"])
        [config] = wire["builderConfig"]
        assert config["columns"] == ["avg(system.cpu.utilization, value(max))"]
        assert config["with"][0]["key"] == "SELECT_DATA_BY"

    def test_explicit_key_kept(self):
        widget = assemble_widget(
            label="Errors",
            widget_type="query_value",
            builder_config=[],
            key="my_key",
        )
        assert widget.key == "my_key"
        assert widget.widget_app_id == 12
        assert widget.builder_view_options is None
