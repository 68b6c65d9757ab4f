"""End-to-end tests through the FastAPI app (HTTP to the authorization servers mocked)."""

from unittest.mock import patch

import pytest
import requests
import yaml
from fastapi import Depends
from fastapi.testclient import TestClient

from resource_auth.main import create_app
from resource_auth.oauth.context import IdentityContext
from resource_auth.oauth.errors import AuthServerError
from resource_auth.security.decorators import require_audience, require_scopes
from resource_auth.security.dependencies import get_current_identity
from resource_auth.settings import get_settings

R1 = "https://api.example.com/notes"
R2 = "https://api.example.com/billing"
I1 = "https://idp-one.example"
I2 = "https://idp-two.example"
BILLING_METADATA_URL = "https://api.example.com/.well-known/oauth-protected-resource/billing"


def _resources_config(make_metadata):
    return {
        "protected_resources": [
            {
                "resource": R1,
                "scopes_supported": ["read:notes"],
                "authorization_servers": [{"type": "oauth", "metadata": make_metadata(I1).to_wire()}],
            },
            {
                "resource": R2,
                "authorization_servers": [{"type": "oidc", "issuer": I2}],
            },
        ],
        "default": {"auth_required": True, "resource": R1, "audience": R1},
        "routes": [
            {"path": "/health", "methods": ["GET"], "auth_required": False},
            {"path": "/notes", "methods": ["GET"], "required_scopes": ["read:notes"]},
            {"path": "/billing/invoices", "resource": R2, "audience": R2, "required_scopes": ["read:billing"]},
        ],
    }


def _add_routes(app):
    @app.get("/notes")
    def list_notes(auth: IdentityContext = Depends(get_current_identity)):
        return {"subject": auth.subject}

    @app.get("/billing/invoices")
    def list_invoices(auth: IdentityContext = Depends(get_current_identity)):
        return {"issuer": auth.issuer}

    @app.get("/admin")
    @require_scopes(["admin"])
    def admin():
        return {"ok": True}

    @app.get("/partner")
    @require_audience("https://partner.example")
    def partner():
        return {"ok": True}


class FakeIdentityProviders:
    """Routes mocked `requests.get` calls to discovery documents and key sets by URL."""

    def __init__(self, make_metadata, jwks, response_factory):
        self.make_metadata = make_metadata
        self.jwks = jwks
        self.response_factory = response_factory
        self.urls = []

    def __call__(self, url, **kwargs):
        self.urls.append(url)
        if url.endswith("/jwks"):
            return self.response_factory(self.jwks)
        if "/.well-known/" in url:
            issuer = url.split("/.well-known/")[0]
            return self.response_factory(self.make_metadata(issuer).to_wire())
        return self.response_factory({}, status_code=404)


@pytest.fixture
def app_factory(tmp_path, monkeypatch):
    def _make(security):
        path = tmp_path / "security_config.yaml"
        path.write_text(yaml.safe_dump({"security": security}), encoding="utf-8")
        monkeypatch.setenv("RESOURCE_AUTH_CONFIG_PATH", str(path))
        get_settings.cache_clear()
        app = create_app()
        _add_routes(app)
        return app

    yield _make
    get_settings.cache_clear()


@pytest.fixture
def providers(make_metadata, jwks, response_factory):
    fake = FakeIdentityProviders(make_metadata, jwks, response_factory)
    with patch("resource_auth.oauth.jwks_cache.requests.get", side_effect=fake), patch(
        "resource_auth.oauth.discovery.requests.get", side_effect=fake
    ):
        yield fake


@pytest.fixture
def client(app_factory, providers, make_metadata):
    with TestClient(app_factory(_resources_config(make_metadata))) as client:
        yield client


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_health_is_public(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_me_echoes_identity(client, make_token):
    response = client.get("/me", headers=_bearer(make_token(I1, aud=R1, scope="read:notes")))
    assert response.status_code == 200
    body = response.json()
    assert body["issuer"] == I1
    assert body["subject"] == "user-1"
    assert body["scopes"] == ["read:notes"]
    assert "token" not in body


def test_missing_header_challenge(client):
    response = client.get("/notes")
    assert response.status_code == 401
    assert response.json()["error"] == "missing_auth_header"
    assert response.headers["WWW-Authenticate"] == (
        'Bearer scope="read:notes", '
        'resource_metadata="https://api.example.com/.well-known/oauth-protected-resource/notes"'
    )


def test_token_from_one_resources_issuer_is_rejected_by_another(client, providers, make_token):
    notes = client.get("/notes", headers=_bearer(make_token(I1, aud=R1, scope="read:notes")))
    assert notes.status_code == 200
    assert providers.urls == [f"{I1}/jwks"]

    billing = client.get("/billing/invoices", headers=_bearer(make_token(I1, aud=R2, scope="read:billing")))
    assert billing.status_code == 401
    assert billing.json()["error"] == "invalid_issuer"
    assert "cause" not in billing.json()
    assert f'resource_metadata="{BILLING_METADATA_URL}"' in billing.headers["WWW-Authenticate"]
    # Rejected on issuer alone: nothing was fetched for the second resource.
    assert providers.urls == [f"{I1}/jwks"]

    billing = client.get("/billing/invoices", headers=_bearer(make_token(I2, aud=R2, scope="read:billing")))
    assert billing.status_code == 200
    assert billing.json() == {"issuer": I2}
    assert providers.urls == [
        f"{I1}/jwks",
        f"{I2}/.well-known/openid-configuration",
        f"{I2}/jwks",
    ]


def test_keys_and_metadata_are_reused_across_requests(client, providers, make_token):
    token = make_token(I2, aud=R2, scope="read:billing")
    for _ in range(3):
        assert client.get("/billing/invoices", headers=_bearer(token)).status_code == 200
    assert providers.urls == [f"{I2}/.well-known/openid-configuration", f"{I2}/jwks"]


def test_wrong_audience(client, make_token):
    response = client.get("/notes", headers=_bearer(make_token(I1, aud=R2, scope="read:notes")))
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_audience"


def test_missing_scopes_is_403(client, make_token):
    response = client.get("/notes", headers=_bearer(make_token(I1, aud=R1, scope="other")))
    assert response.status_code == 403
    assert response.json()["missing_scopes"] == ["read:notes"]
    assert 'error="insufficient_scope"' in response.headers["WWW-Authenticate"]


def test_expired_token(client, make_token):
    response = client.get("/notes", headers=_bearer(make_token(I1, aud=R1, scope="read:notes", exp=1)))
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_token"


def test_decorator_scopes_are_merged(client, make_token):
    response = client.get("/admin", headers=_bearer(make_token(I1, aud=R1, scope="read:notes")))
    assert response.status_code == 403
    assert response.json()["missing_scopes"] == ["admin"]

    response = client.get("/admin", headers=_bearer(make_token(I1, aud=R1, scope="admin")))
    assert response.status_code == 200


def test_decorator_audience_overrides_rule(client, make_token):
    assert client.get("/partner", headers=_bearer(make_token(I1, aud=R1))).status_code == 401
    assert client.get("/partner", headers=_bearer(make_token(I1, aud="https://partner.example"))).status_code == 200


def test_error_details_when_enabled(app_factory, providers, make_metadata, make_token):
    config = _resources_config(make_metadata)
    config["show_error_details"] = True
    with TestClient(app_factory(config)) as client:
        response = client.get("/billing/invoices", headers=_bearer(make_token(I1, aud=R2, scope="read:billing")))
    assert response.json()["cause"] == {"expected": [I2], "actual": I1}


def test_protected_resource_metadata_endpoint(client):
    response = client.get("/.well-known/oauth-protected-resource/billing")
    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.json() == {"resource": R2, "authorization_servers": [I2]}

    notes = client.get("/.well-known/oauth-protected-resource/notes").json()
    assert notes["scopes_supported"] == ["read:notes"]


def test_unknown_metadata_paths_are_404(client):
    assert client.get("/.well-known/oauth-protected-resource/unknown").status_code == 404
    assert client.get("/.well-known/oauth-protected-resource").status_code == 404
    assert client.get("/.well-known/oauth-authorization-server").status_code == 404


def test_legacy_mode(app_factory, providers, make_metadata, make_token):
    config = {
        "server": {"type": "oauth", "metadata": make_metadata(I1).to_wire()},
        "default": {"auth_required": True},
        "routes": [{"path": "/health", "auth_required": False}],
    }
    with TestClient(app_factory(config)) as client:
        metadata = client.get("/.well-known/oauth-authorization-server")
        assert metadata.status_code == 200
        assert metadata.json()["issuer"] == I1
        assert metadata.json()["jwks_uri"] == f"{I1}/jwks"
        assert client.get("/.well-known/oauth-protected-resource").status_code == 404

        assert client.get("/me", headers=_bearer(make_token(I1))).status_code == 200
        response = client.get("/me", headers=_bearer(make_token(I2)))
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"].startswith('Bearer error="invalid_token"')


def test_startup_fails_on_unknown_route_resource(app_factory, make_metadata):
    config = _resources_config(make_metadata)
    config["routes"].append({"path": "/reports", "resource": "https://api.example.com/reports"})
    app = app_factory(config)
    with pytest.raises(AuthServerError):
        with TestClient(app):
            pass


def test_legacy_metadata_fetch_failure_is_oauth_server_error(app_factory):
    config = {
        "server": {"type": "oidc", "issuer": I1},
        "routes": [{"path": "/health", "auth_required": False}],
    }
    with patch(
        "resource_auth.oauth.discovery.requests.get", side_effect=requests.ConnectionError("refused")
    ) as mock_get:
        with TestClient(app_factory(config)) as client:
            response = client.get("/.well-known/oauth-authorization-server")

    assert mock_get.call_args[0][0] == f"{I1}/.well-known/openid-configuration"
    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {
        "error": "server_error",
        "error_description": "An error occurred with the authorization server.",
    }
