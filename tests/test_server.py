import pytest
from fastmcp.exceptions import ToolError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from openapi_adapter.config import Settings
from openapi_adapter.models import ToolDefinition
from openapi_adapter.server import ProxiedTool, StaticTokenMiddleware, build_server


DEFINITION = ToolDefinition(
    name="getpet",
    description="Fetch a pet",
    input_schema={"type": "object", "properties": {"petId": {"type": "string"}}, "required": ["petId"]},
    method="get",
    path_template="/pets/{petId}",
    operation_id="getPet",
)


class StubService:
    def __init__(self, result):
        self.result = result
        self.calls = []

    async def execute_tool(self, tool_name, arguments=None):
        self.calls.append((tool_name, arguments))
        return self.result


class TestProxiedTool:
    def test_exposes_definition(self):
        tool = ProxiedTool(StubService({}), DEFINITION)
        assert tool.name == "getpet"
        assert tool.description == "Fetch a pet"
        assert tool.parameters == DEFINITION.input_schema

    @pytest.mark.asyncio
    async def test_run_returns_text_content(self):
        service = StubService({"content": [{"type": "text", "text": "API Response (Status: 200):\n{}"}]})
        result = await ProxiedTool(service, DEFINITION).run({"petId": "1"})

        assert service.calls == [("getpet", {"petId": "1"})]
        assert result.content[0].text == "API Response (Status: 200):\n{}"

    @pytest.mark.asyncio
    async def test_error_results_raise_tool_error(self):
        service = StubService({"content": [{"type": "text", "text": "API Error (Status: 404): gone"}], "is_error": True})
        with pytest.raises(ToolError, match="API Error \\(Status: 404\\): gone"):
            await ProxiedTool(service, DEFINITION).run({"petId": "1"})


def _protected_app(token):
    async def ok(_request):
        return PlainTextResponse("ok")

    return Starlette(
        routes=[Route("/mcp", ok, methods=["GET", "OPTIONS"]), Route("/health", ok)],
        middleware=[Middleware(StaticTokenMiddleware, token=token)],
    )


class TestStaticTokenMiddleware:
    def test_rejects_missing_or_wrong_token(self):
        client = TestClient(_protected_app("s3cret"))
        assert client.get("/mcp").status_code == 401
        response = client.get("/mcp", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_accepts_matching_token(self):
        client = TestClient(_protected_app("s3cret"))
        assert client.get("/mcp", headers={"Authorization": "Bearer s3cret"}).text == "ok"

    def test_health_and_preflight_are_open(self):
        client = TestClient(_protected_app("s3cret"))
        assert client.get("/health").status_code == 200
        assert client.options("/mcp").status_code == 200

    def test_no_token_configured(self):
        assert TestClient(_protected_app(None)).get("/mcp").status_code == 200


class TestBuildServer:
    @pytest.mark.asyncio
    async def test_registers_every_operation(self, petstore_path):
        settings = Settings(openapi_source=str(petstore_path), adapter_transport="stdio")
        mcp, app = await build_server(settings)

        tools = await mcp.get_tools()
        assert app is None
        assert mcp.name == "Petstore"
        assert sorted(tools) == sorted(
            [
                "listpets",
                "createpet",
                "getpetsbypetid",
                "deletepet",
                "health",
                "uploadphoto",
                "listcategories",
                "createcategory",
            ]
        )
        assert tools["listpets"].parameters["properties"]["limit"]["type"] == "number"

    @pytest.mark.asyncio
    async def test_http_app_requires_token_and_serves_health(self, petstore_path):
        settings = Settings(
            openapi_source=str(petstore_path), adapter_transport="http", adapter_auth_token="s3cret"
        )
        _mcp, app = await build_server(settings)

        client = TestClient(app)
        assert client.get("/health").json() == {"status": "ok"}
        assert client.post("/mcp", json={}).status_code == 401
