from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from resource_auth.oauth.auth_server import AuthServerConfig, DiscoveryAuthServer, ResolvedAuthServer
from resource_auth.oauth.errors import AuthServerError
from resource_auth.oauth.jwks_cache import KeySetCache
from resource_auth.oauth.metadata_cache import AuthServerMetadataCache
from resource_auth.oauth.registry import VerifierMode, VerifierRegistry
from resource_auth.oauth.resource_metadata import ProtectedResourceConfig


class AuthServerEntry(BaseModel):
    """Either `issuer` (discovery on first use) or full `metadata`, never both."""

    type: Literal["oauth", "oidc"]
    issuer: str | None = None
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _exactly_one_shape(self) -> AuthServerEntry:
        if (self.issuer is None) == (self.metadata is None):
            raise ValueError("authorization server entry needs exactly one of `issuer` or `metadata`")
        return self

    def to_descriptor(self) -> AuthServerConfig:
        if self.metadata is not None:
            return ResolvedAuthServer.from_dict(self.type, self.metadata)
        return DiscoveryAuthServer(type=self.type, issuer=self.issuer)


class ProtectedResourceEntry(BaseModel):
    resource: str
    authorization_servers: list[AuthServerEntry] = Field(default_factory=list)
    scopes_supported: list[str] | None = None
    resource_name: str | None = None
    resource_documentation: str | None = None
    bearer_methods_supported: list[str] | None = None

    def to_config(self) -> ProtectedResourceConfig:
        try:
            servers = tuple(s.to_descriptor() for s in self.authorization_servers)
        except AuthServerError as exc:
            raise AuthServerError(
                "invalid_server_config",
                f"An authorization server for resource `{self.resource}` is invalid: {exc}",
                cause=exc.cause,
            ) from exc

        return ProtectedResourceConfig(
            resource=self.resource,
            authorization_servers=servers,
            scopes_supported=tuple(self.scopes_supported) if self.scopes_supported is not None else None,
            resource_name=self.resource_name,
            resource_documentation=self.resource_documentation,
            bearer_methods_supported=(
                tuple(self.bearer_methods_supported) if self.bearer_methods_supported is not None else None
            ),
        )


class DefaultRule(BaseModel):
    auth_required: bool = True
    resource: str | None = None
    audience: str | None = None
    required_scopes: list[str] = Field(default_factory=list)


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    resource: str | None = None
    audience: str | None = None
    required_scopes: list[str] = Field(default_factory=list)

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}


class SecurityConfigModel(BaseModel):
    show_error_details: bool | None = None
    server: AuthServerEntry | None = None
    protected_resources: list[ProtectedResourceEntry] | None = None
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)


@dataclass(frozen=True)
class EffectiveRule:
    """
    Fully-resolved rule (defaults applied) for a particular request.
    """

    auth_required: bool
    resource: str | None
    audience: str | None
    required_scopes: tuple[str, ...]


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # Convert "/notes/{id}" -> r"^/notes/[^/]+$"
    regex = re.sub(r"\{[^/]+\}", r"[^/]+", path_template)
    return re.compile(rf"^{regex}$")


class SecurityConfig:
    """
    Runtime helper around validated config: route matching and registry construction.
    """

    def __init__(self, model: SecurityConfigModel):
        self.model = model

        compiled: list[tuple[str, re.Pattern[str], RouteRule]] = []
        for rule in self.model.routes:
            compiled.append((rule.path, _path_template_to_regex(rule.path), rule))

        # Prefer exact matches over templates.
        self._exact_rules: dict[str, list[RouteRule]] = {}
        for r in self.model.routes:
            self._exact_rules.setdefault(r.path, []).append(r)
        self._compiled_rules = compiled

    @property
    def show_error_details(self) -> bool | None:
        return self.model.show_error_details

    def match(self, path: str, method: str) -> EffectiveRule:
        """
        Find the best matching rule for (path, method), then apply defaults.
        """

        method = method.upper()
        default = self.model.default

        # 1) exact path match
        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        # 2) template match
        for _template, regex, candidate in self._compiled_rules:
            if method not in candidate.normalized_methods():
                continue
            if regex.match(path):
                return _effective(candidate, default)

        # 3) no match -> defaults
        return EffectiveRule(
            auth_required=default.auth_required,
            resource=default.resource,
            audience=default.audience,
            required_scopes=tuple(default.required_scopes),
        )

    def build_registry(
        self,
        metadata_cache: AuthServerMetadataCache | None = None,
        key_set_cache: KeySetCache | None = None,
    ) -> VerifierRegistry:
        """
        Build the verifier registry and check every route's resource against it.

        Raises on any configuration problem so the app refuses to start.
        """
        registry = VerifierRegistry(
            server=self.model.server.to_descriptor() if self.model.server is not None else None,
            protected_resources=(
                [entry.to_config() for entry in self.model.protected_resources]
                if self.model.protected_resources is not None
                else None
            ),
            metadata_cache=metadata_cache,
            key_set_cache=key_set_cache,
        )

        if registry.mode is VerifierMode.RESOURCES:
            default = self.model.default
            if default.auth_required:
                registry.resolve_verifier(default.resource)
            for rule in self.model.routes:
                effective = _effective(rule, default)
                if effective.auth_required:
                    registry.resolve_verifier(effective.resource)
        return registry


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    # A rule that asks for scopes is auth-required even if the default is "public".
    inferred_auth_required = default.auth_required or bool(rule.required_scopes)

    return EffectiveRule(
        auth_required=inferred_auth_required if rule.auth_required is None else rule.auth_required,
        resource=rule.resource or default.resource,
        audience=rule.audience or default.audience,
        required_scopes=tuple(rule.required_scopes or default.required_scopes),
    )


def load_security_config(path: Path) -> SecurityConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "security" not in raw:
        raise ValueError(f"Missing top-level 'security' key in config: {path}")

    model = SecurityConfigModel.model_validate(raw["security"])
    return SecurityConfig(model)
