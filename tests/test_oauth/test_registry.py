"""Tests for the verifier registry (legacy vs. multi-resource)."""

import logging

import pytest

from resource_auth.oauth.auth_server import DiscoveryAuthServer, ResolvedAuthServer
from resource_auth.oauth.errors import AuthServerError, BearerAuthError
from resource_auth.oauth.jwks_cache import KeySetCache
from resource_auth.oauth.metadata_cache import AuthServerMetadataCache
from resource_auth.oauth.registry import VerifierMode, VerifierRegistry
from resource_auth.oauth.resource_metadata import ProtectedResourceConfig

R1 = "https://api.example.com/notes"
R2 = "https://api.example.com/billing"
I1 = "https://idp-one.example"
I2 = "https://idp-two.example"


def _resource(resource, *servers, **kwargs):
    return ProtectedResourceConfig(resource=resource, authorization_servers=tuple(servers), **kwargs)


@pytest.fixture
def server(make_metadata):
    def _make(issuer=I1, **overrides):
        return ResolvedAuthServer(type="oauth", metadata=make_metadata(issuer, **overrides))

    return _make


def test_requires_exactly_one_configuration_shape(server):
    with pytest.raises(AuthServerError) as exc_info:
        VerifierRegistry()
    assert exc_info.value.code == "invalid_server_config"

    with pytest.raises(AuthServerError):
        VerifierRegistry(server=server(), protected_resources=[_resource(R1, server())])


def test_legacy_mode_ignores_resource_hint(server, caplog):
    with caplog.at_level(logging.WARNING, logger="resource_auth.oauth.registry"):
        registry = VerifierRegistry(server=server())

    assert registry.mode is VerifierMode.LEGACY
    assert "deprecated" in caplog.text
    verifier = registry.resolve_verifier()
    assert registry.resolve_verifier("https://anything.example") is verifier
    assert verifier.issuers == [I1]
    assert registry.server_metadata().issuer == I1
    assert registry.resource_metadata_url(R1) is None
    with pytest.raises(AuthServerError):
        registry.protected_resource_metadata()


def test_legacy_server_is_validated(server):
    with pytest.raises(AuthServerError):
        VerifierRegistry(server=server(response_types_supported=["token"]))


def test_legacy_discovery_metadata_goes_through_cache(make_metadata):
    calls = []

    def fetcher(issuer, type):
        calls.append(issuer)
        return ResolvedAuthServer(type=type, metadata=make_metadata(issuer))

    registry = VerifierRegistry(
        server=DiscoveryAuthServer(type="oidc", issuer=I1),
        metadata_cache=AuthServerMetadataCache(fetcher=fetcher),
    )
    assert calls == []
    registry.server_metadata()
    registry.server_metadata()
    assert calls == [I1]


def test_resources_mode_builds_one_verifier_per_resource(server):
    registry = VerifierRegistry(
        protected_resources=[_resource(R1, server(I1)), _resource(R2, server(I2), scopes_supported=("read",))]
    )

    assert registry.mode is VerifierMode.RESOURCES
    assert registry.resources == [R1, R2]
    assert registry.resolve_verifier(R1).issuers == [I1]
    assert registry.resolve_verifier(R2).issuers == [I2]
    assert registry.resolve_verifier(R1) is not registry.resolve_verifier(R2)


def test_single_resource_config_is_accepted(server):
    registry = VerifierRegistry(protected_resources=_resource(R1, server()))
    assert registry.resources == [R1]


def test_trust_is_isolated_between_resources(server):
    registry = VerifierRegistry(protected_resources=[_resource(R1, server(I1)), _resource(R2, server(I2))])

    with pytest.raises(BearerAuthError) as exc_info:
        registry.resolve_verifier(R2).validate_jwt_issuer(I1)
    assert exc_info.value.code == "invalid_issuer"


@pytest.mark.parametrize("resource", [None, "", "https://unknown.example"])
def test_resolving_unknown_resource_is_config_error(server, resource):
    registry = VerifierRegistry(protected_resources=[_resource(R1, server())])
    with pytest.raises(AuthServerError) as exc_info:
        registry.resolve_verifier(resource)
    assert exc_info.value.code == "invalid_server_config"


def test_empty_resource_list_is_rejected():
    with pytest.raises(AuthServerError) as exc_info:
        VerifierRegistry(protected_resources=[])
    assert "empty" in exc_info.value.cause


def test_duplicate_resource_is_rejected(server):
    with pytest.raises(AuthServerError) as exc_info:
        VerifierRegistry(protected_resources=[_resource(R1, server(I1)), _resource(R1, server(I2))])
    assert R1 in str(exc_info.value.cause)


def test_duplicate_issuer_within_resource_is_rejected(server):
    with pytest.raises(AuthServerError) as exc_info:
        VerifierRegistry(protected_resources=[_resource(R1, server(I1), DiscoveryAuthServer(type="oidc", issuer=I1))])
    assert I1 in str(exc_info.value.cause)


def test_same_issuer_on_two_resources_is_allowed(server):
    registry = VerifierRegistry(protected_resources=[_resource(R1, server(I1)), _resource(R2, server(I1))])
    assert registry.resolve_verifier(R2).issuers == [I1]


def test_relative_resource_is_rejected(server):
    with pytest.raises(AuthServerError):
        VerifierRegistry(protected_resources=[_resource("/notes", server())])


def test_invalid_server_names_its_resource(server):
    with pytest.raises(AuthServerError) as exc_info:
        VerifierRegistry(protected_resources=[_resource(R1, server(response_types_supported=["token"]))])
    assert R1 in str(exc_info.value)
    assert isinstance(exc_info.value.cause, AuthServerError)


def test_resource_metadata_documents(server):
    registry = VerifierRegistry(
        protected_resources=[
            _resource(R1, server(I1), scopes_supported=("read:notes",)),
            _resource("https://api.example.com", server(I2)),
        ]
    )

    by_path = registry.resource_metadata_by_path()
    assert set(by_path) == {
        "/.well-known/oauth-protected-resource/notes",
        "/.well-known/oauth-protected-resource",
    }
    assert by_path["/.well-known/oauth-protected-resource/notes"].to_wire() == {
        "resource": R1,
        "authorization_servers": [I1],
        "scopes_supported": ["read:notes"],
    }
    assert len(registry.protected_resource_metadata()) == 2
    assert registry.resource_metadata_url(R1) == "https://api.example.com/.well-known/oauth-protected-resource/notes"


def test_registries_do_not_share_caches(server):
    a = VerifierRegistry(server=server())
    b = VerifierRegistry(server=server())
    assert a.metadata_cache is not b.metadata_cache
    assert a.key_set_cache is not b.key_set_cache


def test_injected_caches_are_used(server):
    metadata_cache = AuthServerMetadataCache()
    key_set_cache = KeySetCache(ttl_seconds=5, timeout=1.0)
    registry = VerifierRegistry(
        protected_resources=[_resource(R1, server())],
        metadata_cache=metadata_cache,
        key_set_cache=key_set_cache,
    )
    assert registry.metadata_cache is metadata_cache
    assert registry.key_set_cache is key_set_cache


def test_verification_uses_injected_key_set_cache(server, key_set_cache, make_token):
    registry = VerifierRegistry(protected_resources=[_resource(R1, server(I1))], key_set_cache=key_set_cache)
    auth = registry.resolve_verifier(R1).create_verify_jwt_function()(make_token(I1))
    assert auth.issuer == I1
    assert key_set_cache.requested == [f"{I1}/jwks"]


def test_first_resource_wins_on_shared_metadata_path(server):
    registry = VerifierRegistry(
        protected_resources=[
            _resource("https://a.example.com/notes", server(I1)),
            _resource("https://b.example.com/notes", server(I2)),
        ]
    )
    served = registry.resource_metadata_by_path()["/.well-known/oauth-protected-resource/notes"]
    assert served.resource == "https://a.example.com/notes"
    assert registry.resolve_verifier("https://b.example.com/notes").issuers == [I2]
