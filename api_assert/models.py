"""Data models for api-assert.

All models use Pydantic v2. ClientConfig is frozen and shared by every call a
client makes; RequestSpec, ExpectationSpec and ResponseOutcome are created
fresh per call.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from api_assert.errors import JsonParseError


_TRUE_STRINGS = {"1", "true", "yes", "on"}


# =============================================================================
# Client Configuration
# =============================================================================


class ClientConfig(BaseModel):
    """Connection defaults set once when a client is constructed.

    verify_tls defaults to False: certificates are not verified, so suites can
    run against self-signed test endpoints. Never point a client configured
    this way at anything but a test environment.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    use_tls: bool = Field(default=False, description="Use HTTPS instead of HTTP")
    host: str = Field(default="localhost", description="Server host name or address")
    port: int = Field(ge=1, le=65535, description="Server port (443 with TLS, else 80)")
    base_path: str = Field(default="", description="Prefix for every request path, e.g. /api")
    default_headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent with every request"
    )
    expected_headers: dict[str, str] = Field(
        default_factory=dict, description="Response headers expected on every call"
    )
    default_status: int | None = Field(
        default=None, description="Expected status code when a call sets none"
    )
    timeout_ms: int = Field(default=30000, ge=0, description="Request deadline in ms (0 = none)")
    auth: str | None = Field(default=None, description="Basic credentials as user:password")
    debug: bool = Field(default=False, description="Log transport errors at ERROR level")
    verify_tls: bool = Field(default=False, description="Verify server certificates")

    @model_validator(mode="before")
    @classmethod
    def default_port_for_protocol(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("port") is None:
            use_tls = data.get("use_tls", False)
            if isinstance(use_tls, str):
                use_tls = use_tls.strip().lower() in _TRUE_STRINGS
            data = {**data, "port": 443 if use_tls else 80}
        return data

    @property
    def scheme(self) -> str:
        return "https" if self.use_tls else "http"

    @property
    def origin(self) -> str:
        """scheme://host:port, with IPv6 literals bracketed."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{host}:{self.port}"


# =============================================================================
# Per-call Request and Expectations
# =============================================================================


class RequestSpec(BaseModel):
    """Per-call overrides applied on top of ClientConfig.

    For bodyless verbs `data` becomes the query string; for POST/PUT/PATCH it
    is the body. A header set to None removes the matching default header.
    """

    model_config = ConfigDict(extra="forbid")

    data: dict[str, Any] | list[Any] | str | bytes | None = Field(
        default=None, description="Query data (bodyless verbs) or body (body verbs)"
    )
    query: dict[str, Any] | str | None = Field(
        default=None, description="Query string appended for every verb"
    )
    body: dict[str, Any] | list[Any] | str | bytes | None = Field(
        default=None, description="Body used when data is absent"
    )
    form: dict[str, Any] | None = Field(
        default=None, description="Body sent as application/x-www-form-urlencoded"
    )
    headers: dict[str, str | None] = Field(
        default_factory=dict, description="Header overrides (None deletes a default)"
    )
    auth: str | None = Field(default=None, description="Overrides ClientConfig.auth")
    timeout_ms: int | None = Field(default=None, ge=0, description="Overrides ClientConfig.timeout_ms")


class ExpectationSpec(BaseModel):
    """What the response should look like.

    `body` and `data` are only checked when explicitly set, so data=None
    expects a JSON null body rather than disabling the check.
    """

    model_config = ConfigDict(extra="forbid")

    status: int | None = Field(default=None, description="Expected status code")
    headers: dict[str, str] = Field(default_factory=dict, description="Expected response headers")
    body: str | None = Field(default=None, description="Exact expected body text")
    data: Any = Field(default=None, description="Expected decoded JSON value")
    ok: bool | None = Field(default=None, description="Expected 2xx-ness of the status")

    @property
    def expects_body(self) -> bool:
        return "body" in self.model_fields_set

    @property
    def expects_data(self) -> bool:
        return "data" in self.model_fields_set


# =============================================================================
# Response Outcome
# =============================================================================


class ResponseOutcome(BaseModel):
    """One fully buffered response.

    Header keys are lowercase; repeated headers are joined with ", ".
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    method: str = Field(description="HTTP method that was sent")
    url: str = Field(description="Full URL that was requested")
    status_code: int = Field(description="HTTP status code")
    headers: dict[str, str] = Field(default_factory=dict, description="Response headers")
    body: str = Field(default="", description="Body decoded as UTF-8")
    data: Any = Field(default=None, description="Decoded JSON body, if any")
    parse_error: JsonParseError | None = Field(
        default=None, description="Why a JSON body could not be decoded"
    )
    elapsed_ms: float = Field(default=0.0, description="Time until the body was fully read")

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code <= 299

    @property
    def client_error(self) -> bool:
        return 400 <= self.status_code <= 499

    @property
    def server_error(self) -> bool:
        return self.status_code >= 500

    @property
    def has_data(self) -> bool:
        """True when the body was JSON and decoded without error."""
        return self.parse_error is None and "data" in self.model_fields_set

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower())
