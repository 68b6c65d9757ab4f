"""RFC 6750 ``WWW-Authenticate`` header for Bearer challenges."""

from __future__ import annotations

HEADER_NAME = "WWW-Authenticate"


class BearerWWWAuthenticateHeader:
    """
    Collects auth-params and renders ``Bearer key="value", ...``.

    Empty values are skipped; a header without params renders as "".
    """

    header_name = HEADER_NAME

    def __init__(self) -> None:
        self._params: dict[str, str] = {}

    def set_parameter_if_value_exists(self, param: str, value: str | None) -> BearerWWWAuthenticateHeader:
        if value:
            self._params[param] = value.replace('"', "'")
        return self

    def __str__(self) -> str:
        params = ", ".join(f'{key}="{value}"' for key, value in self._params.items())
        return f"Bearer {params}" if params else ""
