"""Tests for the MCP tools."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

from mcp_middleware import server
from mcp_middleware.client import (
    MiddlewareAPIError,
    MiddlewareClient,
    MiddlewareConnectionError,
    MiddlewareResponseError,
)
from mcp_middleware.models import (
    IncidentsResponse,
    MetricsV2Response,
    QueryResponse,
    Report,
    ReportListResponse,
    Widget,
)
from mcp_middleware.schemas import (
    BuilderConfigItemInput,
    LayoutItemInput,
    QueryInputItem,
    WidgetDataRequest,
)


@pytest.fixture
def mock_client():
    """Patch get_client with a client whose API methods are async mocks."""
    client = AsyncMock()
    client.issue_url = MagicMock(
        side_effect=lambda fp: f"https://acme.middleware.io/ops-ai?fingerprint={fp}"
    )
    with patch("mcp_middleware.server.get_client", return_value=client):
        yield client


def cpu_config() -> BuilderConfigItemInput:
    return BuilderConfigItemInput.model_validate(
        {
            "columns": [{"name": "system.cpu.utilization", "aggregation_method": "avg"}],
            "source": {"name": "host"},
        }
    )


class TestErrorHandling:
    """Test mapping of failures to error results."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "error_type"),
        [
            (MiddlewareAPIError("API error (401): bad key", 401), "authentication"),
            (MiddlewareAPIError("API error (403): forbidden", 403), "authentication"),
            (MiddlewareAPIError("API error (500): boom", 500), "api_error"),
            (MiddlewareResponseError("received HTML response"), "invalid_response"),
            (MiddlewareConnectionError("request failed"), "connection"),
            (ValueError("bad input"), "validation"),
            (RuntimeError("surprise"), "unknown"),
        ],
    )
    async def test_error_types(self, mock_client, error, error_type):
        mock_client.get_resources.side_effect = error

        result = await server.get_resources_impl()

        assert result["success"] is False
        assert result["error_type"] == error_type
        assert str(error) in result["error"]

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        with patch(
            "mcp_middleware.server.get_client",
            side_effect=ValueError("Middleware credentials not configured."),
        ):
            result = await server.list_dashboards_impl()

        assert result == {
            "success": False,
            "error": "Middleware credentials not configured.",
            "error_type": "validation",
        }


class TestDashboardTools:
    """Test dashboard tool implementations."""

    @pytest.mark.asyncio
    async def test_list_dashboards(self, mock_client):
        mock_client.get_dashboards.return_value = ReportListResponse(
            reports=[Report(id=1, label="Infra")], total=1, limit=10
        )

        result = await server.list_dashboards_impl(limit=10, filter_by="favorite")

        assert result["success"] is True
        assert result["total"] == 1
        assert result["reports"] == [{"id": 1, "label": "Infra"}]
        mock_client.get_dashboards.assert_awaited_once_with(
            limit=10, offset=None, search=None, filter_by="favorite", display_scope=None
        )

    @pytest.mark.asyncio
    async def test_create_dashboard_sends_empty_scope(self, mock_client):
        mock_client.create_dashboard.return_value = Report(id=5, label="New board")

        result = await server.create_dashboard_impl("New board", "private")

        assert result["success"] is True
        assert result["dashboard"] == {"id": 5, "label": "New board"}
        [request] = mock_client.create_dashboard.await_args.args
        assert request.to_wire() == {
            "label": "New board",
            "visibility": "private",
            "display_scope": "",
        }

    @pytest.mark.asyncio
    async def test_update_dashboard(self, mock_client):
        mock_client.update_dashboard.return_value = Report(id=9)

        await server.update_dashboard_impl(9, "Renamed", "public", key="renamed")

        report_id, request = mock_client.update_dashboard.await_args.args
        assert report_id == 9
        assert request.id == 9
        assert request.key == "renamed"
        assert request.display_scope == ""

    @pytest.mark.asyncio
    async def test_clone_dashboard_uses_source_key(self, mock_client):
        mock_client.clone_dashboard.return_value = Report(id=10)

        result = await server.clone_dashboard_impl("Copy", "private", source_key="infra")

        [request] = mock_client.clone_dashboard.await_args.args
        assert request.key == "infra"
        assert result["message"] == "Dashboard cloned successfully"

    @pytest.mark.asyncio
    async def test_delete_and_favorite(self, mock_client):
        assert (await server.delete_dashboard_impl(3))["success"] is True
        mock_client.delete_dashboard.assert_awaited_once_with(3)

        assert (await server.set_dashboard_favorite_impl(3, True))["success"] is True
        mock_client.set_dashboard_favorite.assert_awaited_once_with(3, True)


class TestWidgetTools:
    """Test widget tool implementations."""

    @pytest.mark.asyncio
    async def test_create_widget(self, mock_client):
        mock_client.create_widget.return_value = Widget(id=77, label="CPU")

        result = await server.create_widget_impl(
            label="CPU",
            widget_type="bar_chart",
            builder_config=[cpu_config()],
            layout=LayoutItemInput(x=2, y=1, w=1, h=1),
            report_id=42,
        )

        assert result["success"] is True
        assert result["widget"] == {"id": 77, "label": "CPU"}
        [widget] = mock_client.create_widget.await_args.args
        wire = widget.to_wire()
        assert wire["builderId"] == -1
        assert wire["widgetAppId"] == 2
        assert wire["layout"] == {"x": 2, "y": 1, "w": 4, "h": 6}
        assert wire["builderViewOptions"] == {
            "disableUserEdit": False,
            "report": {"reportId": 42},
        }
        assert wire["builderConfig"][0]["columns"] == ["avg(system.cpu.utilization)"]

    @pytest.mark.asyncio
    async def test_create_widget_without_layout(self, mock_client):
        mock_client.create_widget.return_value = Widget(id=1)

        await server.create_widget_impl(
            label="CPU", widget_type="query_value", builder_config=[cpu_config()]
        )

        [widget] = mock_client.create_widget.await_args.args
        assert widget.layout.to_wire() == {"x": 0, "y": 0, "w": 4, "h": 6}
        assert widget.builder_view_options is None

    @pytest.mark.asyncio
    async def test_update_widget_requires_builder_id(self, mock_client):
        result = await server.update_widget_impl(builder_id=0)

        assert result["success"] is False
        assert result["error_type"] == "validation"
        mock_client.update_widget.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_widget(self, mock_client):
        mock_client.update_widget.return_value = Widget(id=5)

        result = await server.update_widget_impl(
            builder_id=5,
            label="Memory",
            widget_type="data_table",
            layout=LayoutItemInput(w=8, h=2),
        )

        assert result["message"] == "Widget updated successfully"
        [widget] = mock_client.update_widget.await_args.args
        wire = widget.to_wire()
        assert wire["builderId"] == 5
        assert wire["widgetAppId"] == 5
        assert wire["key"].startswith("memory_")
        assert wire["layout"] == {"x": 0, "y": 0, "w": 8, "h": 6}
        assert "builderConfig" not in wire

    @pytest.mark.asyncio
    async def test_update_widget_layouts(self, mock_client):
        result = await server.update_widget_layouts_impl(
            [LayoutItemInput(x=0, y=0, w=2, h=20, scope_id=11)],
            operation_message="Moved CPU widget",
        )

        assert result == {"success": True, "message": "Moved CPU widget"}
        [request] = mock_client.update_widget_layouts.await_args.args
        assert request.to_wire() == {
            "layouts": [{"x": 0, "y": 0, "w": 4, "h": 20, "_scope_id": 11}]
        }

    @pytest.mark.asyncio
    async def test_get_widget_data_by_key(self, mock_client):
        mock_client.get_widget_data.return_value = MagicMock(
            to_wire=MagicMock(return_value={"key": "cpu"})
        )

        result = await server.get_widget_data_impl(WidgetDataRequest(key="cpu"))

        assert result == {"success": True, "data": {"key": "cpu"}}
        [widget] = mock_client.get_widget_data.await_args.args
        assert widget.to_wire() == {"key": "cpu"}

    @pytest.mark.asyncio
    async def test_get_multi_widget_data(self, mock_client):
        mock_client.get_multi_widget_data.return_value = []

        result = await server.get_multi_widget_data_impl(
            [WidgetDataRequest(builder_id=1), WidgetDataRequest(builder_id=2)]
        )

        assert result == {"success": True, "widgets": []}
        [widgets] = mock_client.get_multi_widget_data.await_args.args
        assert [w.builder_id for w in widgets] == [1, 2]


class TestMetricsTools:
    """Test metrics and query tool implementations."""

    @pytest.mark.asyncio
    async def test_get_metrics(self, mock_client):
        mock_client.get_metrics.return_value = MetricsV2Response(
            items=[{"name": "system.cpu.utilization"}], page=1, limit=100
        )

        result = await server.get_metrics_impl("metrics", "timeseries", ["host"])

        assert result["items"] == [{"name": "system.cpu.utilization"}]
        [request] = mock_client.get_metrics.await_args.args
        assert request.to_wire() == {
            "dataType": "metrics",
            "widgetType": "timeseries",
            "resources": ["host"],
        }

    @pytest.mark.asyncio
    async def test_groupby_requires_metric(self, mock_client):
        result = await server.get_metrics_impl("groupby", "list")

        assert result["error_type"] == "validation"
        mock_client.get_metrics.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_resources(self, mock_client):
        mock_client.get_resources.return_value = ["host", "container"]

        result = await server.get_resources_impl()

        assert result == {
            "success": True,
            "count": 2,
            "resources": ["host", "container"],
        }

    @pytest.mark.asyncio
    async def test_query_transforms_columns(self, mock_client):
        mock_client.query.return_value = QueryResponse(query_results=[])
        item = QueryInputItem.model_validate(
            {
                "chartType": "data_table",
                "columns": [
                    {"name": "body"},
                    {
                        "name": "cpu",
                        "aggregation_method": "avg",
                        "rollup_method": "sum",
                    },
                ],
                "resources": ["log"],
                "timeRange": {"from": 1000, "to": 2000},
            }
        )

        result = await server.query_impl([item])

        assert result == {"success": True, "query_results": []}
        [request] = mock_client.query.await_args.args
        [query] = request.to_wire()["queries"]
        assert query["columns"] == ["body", "avg(cpu, value(sum))"]
        assert query["timeRange"] == {"from": 1000, "to": 2000}


class TestIncidentTools:
    """Test error/incident tool implementations."""

    @pytest.mark.asyncio
    async def test_list_errors_page_floor(self, mock_client):
        mock_client.get_incidents.return_value = IncidentsResponse(items=[])

        await server.list_errors_impl(1, 2, 0, "all")

        assert mock_client.get_incidents.await_args.kwargs["page"] == 1

    @pytest.mark.asyncio
    async def test_get_error_details(self, mock_client):
        mock_client.get_incident_detail.return_value = {"fingerprint": "abc"}

        result = await server.get_error_details_impl("abc", 1, 2)

        assert result == {
            "success": True,
            "issue_url": "https://acme.middleware.io/ops-ai?fingerprint=abc",
            "incident": {"fingerprint": "abc"},
        }


class TestServerRegistration:
    """Test tool registration through an in-memory MCP client."""

    @pytest.mark.asyncio
    async def test_all_tools_registered(self):
        mcp = server.create_server()

        async with Client(mcp) as client:
            tools = await client.list_tools()

        names = {tool.name for tool in tools}
        assert len(names) == 22
        assert names == {tool.__name__ for tool in server.TOOLS}

    @pytest.mark.asyncio
    async def test_excluded_tools_hidden(self):
        mcp = server.create_server({"delete_dashboard", "delete_widget", "unknown"})

        async with Client(mcp) as client:
            tools = await client.list_tools()

        names = {tool.name for tool in tools}
        assert len(names) == 20
        assert "delete_dashboard" not in names
        assert "delete_widget" not in names

    @pytest.mark.asyncio
    async def test_input_schema_names(self):
        async with Client(server.create_server()) as client:
            tools = {tool.name: tool for tool in await client.list_tools()}

        create_widget = tools["create_widget"].inputSchema
        assert "builderConfig" in create_widget["properties"]
        assert {"label", "widget_type", "builderConfig", "report_id", "layout"} <= set(
            create_widget["required"]
        )
        assert "builder_config" in tools["get_widget_data"].inputSchema["properties"]
        label = tools["create_dashboard"].inputSchema["properties"]["label"]
        assert label["minLength"] == 3

        visibility = tools["create_dashboard"].inputSchema["properties"]["visibility"]
        assert visibility["enum"] == ["public", "private"]
        status = tools["list_errors"].inputSchema["properties"]["status"]
        assert status["enum"] == ["all", "for_review", "resolved", "reviewed", "ignored"]

    @pytest.mark.asyncio
    async def test_call_tool(self, mock_client):
        mock_client.get_resources.return_value = ["host"]

        async with Client(server.create_server()) as client:
            result = await client.call_tool("get_resources", {})

        payload = json.loads(result.content[0].text)
        assert payload == {"success": True, "count": 1, "resources": ["host"]}

    @pytest.mark.asyncio
    async def test_short_label_rejected(self, mock_client):
        async with Client(server.create_server()) as client:
            with pytest.raises(ToolError):
                await client.call_tool(
                    "create_dashboard", {"label": "ab", "visibility": "public"}
                )

        mock_client.create_dashboard.assert_not_awaited()


class TestUpstreamResponses:
    """Test tool results for null and malformed upstream bodies."""

    @staticmethod
    def client_returning(body):
        return MiddlewareClient(
            "https://acme.middleware.io",
            "key",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body)),
        )

    @pytest.mark.asyncio
    async def test_empty_incident_list(self):
        with patch(
            "mcp_middleware.server.get_client",
            return_value=self.client_returning({"items": None}),
        ):
            result = await server.list_errors_impl(1, 2, 1, "all")

        assert result == {"items": [], "success": True}

    @pytest.mark.asyncio
    async def test_empty_dashboard_list(self):
        with patch(
            "mcp_middleware.server.get_client",
            return_value=self.client_returning({"reports": None, "total": 0}),
        ):
            result = await server.list_dashboards_impl()

        assert result["success"] is True
        assert result["reports"] == []

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        with patch(
            "mcp_middleware.server.get_client",
            return_value=self.client_returning({"items": "oops", "page": "x"}),
        ):
            result = await server.get_metrics_impl("metrics", "timeseries")

        assert result["success"] is False
        assert result["error_type"] == "invalid_response"
