from openapi_adapter.credentials import CredentialKind, CredentialStore, env_var_name
from openapi_adapter.schemes import (
    ApiKeyScheme,
    HttpScheme,
    OAuth2Scheme,
    OpenIdConnectScheme,
    parse_security_scheme,
    parse_security_schemes,
)


class TestEnvVarName:
    def test_scheme_name_is_upper_cased_and_sanitized(self):
        assert env_var_name("petstore-auth", CredentialKind.API_KEY) == "API_KEY_PETSTORE_AUTH"
        assert env_var_name("my.oauth scheme", CredentialKind.OAUTH_CLIENT_ID) == "OAUTH_CLIENT_ID_MY_OAUTH_SCHEME"


class TestCredentialStore:
    def test_lookup_by_scheme_and_kind(self):
        store = CredentialStore({"BEARER_TOKEN_MAIN": "abc"})
        assert store.get("main", CredentialKind.BEARER_TOKEN) == "abc"
        assert store.has("main", CredentialKind.BEARER_TOKEN)
        assert not store.has("main", CredentialKind.API_KEY)

    def test_empty_values_count_as_missing(self):
        store = CredentialStore({"API_KEY_MAIN": ""})
        assert store.get("main", CredentialKind.API_KEY) is None

    def test_snapshot_is_detached_from_source(self):
        environ = {"API_KEY_MAIN": "one"}
        store = CredentialStore.from_environ(environ)
        environ["API_KEY_MAIN"] = "two"
        assert store.get("main", CredentialKind.API_KEY) == "one"

    def test_from_process_environment(self, monkeypatch):
        monkeypatch.setenv("OPENID_TOKEN_OIDC", "id-token")
        assert CredentialStore.from_environ().get("oidc", CredentialKind.OPENID_TOKEN) == "id-token"


class TestParseSecuritySchemes:
    def test_all_variants(self, petstore):
        schemes = parse_security_schemes(petstore)
        assert schemes["api_key"] == ApiKeyScheme(name="X-API-Key", location="header")
        oauth = schemes["petstore_oauth"]
        assert isinstance(oauth, OAuth2Scheme)
        assert oauth.token_url() == "https://auth.example.com/token"
        assert oauth.supports_token_flow

    def test_http_and_openid(self):
        assert parse_security_scheme("b", {"type": "http", "scheme": "Bearer"}).is_bearer
        assert parse_security_scheme("o", {"type": "openIdConnect", "openIdConnectUrl": "u"}) == OpenIdConnectScheme("u")
        assert isinstance(parse_security_scheme("h", {"type": "http", "scheme": "basic"}), HttpScheme)

    def test_password_flow_is_token_fallback(self):
        scheme = parse_security_scheme(
            "o",
            {
                "type": "oauth2",
                "flows": {
                    "authorizationCode": {"authorizationUrl": "https://a", "tokenUrl": "https://code"},
                    "password": {"tokenUrl": "https://password"},
                },
            },
        )
        assert scheme.token_url() == "https://password"

    def test_authorization_code_only_has_no_token_flow(self):
        scheme = parse_security_scheme(
            "o", {"type": "oauth2", "flows": {"authorizationCode": {"tokenUrl": "https://code"}}}
        )
        assert not scheme.supports_token_flow
        assert scheme.token_url() is None

    def test_invalid_schemes_are_ignored(self, caplog):
        assert parse_security_scheme("k", {"type": "apiKey", "in": "body", "name": "x"}) is None
        assert parse_security_scheme("m", {"type": "mutualTLS"}) is None
        assert parse_security_scheme("x", "nope") is None
        assert "Unsupported security scheme type 'mutualTLS'" in caplog.text
