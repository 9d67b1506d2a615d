from openapi_adapter.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ADAPTER_TRANSPORT", raising=False)
        settings = Settings()
        assert settings.adapter_transport == "stdio"
        assert settings.openapi_dereference is True
        assert settings.operation_allowlist() == set()

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("OPENAPI_SOURCE", "https://api.example.com/openapi.json")
        monkeypatch.setenv("ADAPTER_PORT", "8081")
        monkeypatch.setenv("ADAPTER_OPERATION_DENYLIST", "deletePet, ,purge")
        settings = Settings()
        assert settings.openapi_source == "https://api.example.com/openapi.json"
        assert settings.adapter_port == 8081
        assert settings.operation_denylist() == {"deletePet", "purge"}
