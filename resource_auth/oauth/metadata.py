"""
OAuth 2.0 metadata documents (RFC 8414 and RFC 9728).

Attributes are snake_case, which is also the wire format. camelCase keys are
accepted on input so that hand-written configs in either style validate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

DEFAULT_GRANT_TYPES: tuple[str, ...] = ("authorization_code", "implicit")
DEFAULT_RESPONSE_MODES: tuple[str, ...] = ("query", "fragment")


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        loc_by_alias=False,
        extra="ignore",
        frozen=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Return the snake_case JSON document, omitting unset fields."""
        return self.model_dump(mode="json", exclude_none=True, by_alias=False)


class AuthorizationServerMetadata(_WireModel):
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    response_types_supported: list[str]

    jwks_uri: str | None = None
    registration_endpoint: str | None = None
    scopes_supported: list[str] | None = None
    response_modes_supported: list[str] | None = None
    grant_types_supported: list[str] | None = None
    token_endpoint_auth_methods_supported: list[str] | None = None
    token_endpoint_auth_signing_alg_values_supported: list[str] | None = None
    service_documentation: str | None = None
    ui_locales_supported: list[str] | None = None
    op_policy_uri: str | None = None
    op_tos_uri: str | None = None
    revocation_endpoint: str | None = None
    revocation_endpoint_auth_methods_supported: list[str] | None = None
    revocation_endpoint_auth_signing_alg_values_supported: list[str] | None = None
    introspection_endpoint: str | None = None
    introspection_endpoint_auth_methods_supported: list[str] | None = None
    introspection_endpoint_auth_signing_alg_values_supported: list[str] | None = None
    code_challenge_methods_supported: list[str] | None = None
    userinfo_endpoint: str | None = None

    def effective_grant_types(self) -> list[str]:
        # RFC 8414 section 2: omitted means ["authorization_code", "implicit"]
        if self.grant_types_supported is None:
            return list(DEFAULT_GRANT_TYPES)
        return list(self.grant_types_supported)

    def effective_response_modes(self) -> list[str]:
        if self.response_modes_supported is None:
            return list(DEFAULT_RESPONSE_MODES)
        return list(self.response_modes_supported)


class ProtectedResourceMetadata(_WireModel):
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""

    resource: str
    authorization_servers: list[str] | None = None
    jwks_uri: str | None = None
    scopes_supported: list[str] | None = None
    bearer_methods_supported: list[str] | None = None
    resource_signing_alg_values_supported: list[str] | None = None
    resource_name: str | None = None
    resource_documentation: str | None = None
    resource_policy_uri: str | None = None
    resource_tos_uri: str | None = None
    tls_client_certificate_bound_access_tokens: bool | None = None
    authorization_details_types_supported: list[str] | None = None
    dpop_signing_alg_values_supported: list[str] | None = None
    dpop_bound_access_tokens_required: bool | None = None


@dataclass(frozen=True)
class FieldError:
    """One failed field of a metadata document. ``field`` is a dotted path ("" for the root)."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class MetadataParseResult:
    metadata: AuthorizationServerMetadata | None
    errors: tuple[FieldError, ...] = ()

    @property
    def ok(self) -> bool:
        return self.metadata is not None


def _field_errors(exc: ValidationError) -> tuple[FieldError, ...]:
    return tuple(
        FieldError(field=".".join(str(part) for part in err["loc"]), message=err["msg"])
        for err in exc.errors()
    )


def parse_server_metadata(data: Any) -> MetadataParseResult:
    """
    Parse an authorization server metadata document.

    Never raises: a failure is returned as a result carrying one ``FieldError``
    per offending field, so callers can report exactly what was wrong.
    """
    if isinstance(data, AuthorizationServerMetadata):
        return MetadataParseResult(metadata=data)
    if not isinstance(data, dict):
        return MetadataParseResult(
            metadata=None,
            errors=(FieldError(field="", message="The server metadata is not a JSON object."),),
        )
    try:
        return MetadataParseResult(metadata=AuthorizationServerMetadata.model_validate(data))
    except ValidationError as exc:
        return MetadataParseResult(metadata=None, errors=_field_errors(exc))
