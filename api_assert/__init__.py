"""api-assert: single-shot HTTP requests with inline response assertions."""

from api_assert.aio import AsyncHttpClient
from api_assert.assertions import AssertionHandle, Expect
from api_assert.client import HttpClient
from api_assert.config_loader import client_config_from_url, load_client_config
from api_assert.errors import (
    ApiAssertError,
    ConfigError,
    ErrorKind,
    InvalidArgumentError,
    JsonParseError,
    RequestTimeoutError,
    TransportError,
)
from api_assert.models import ClientConfig, ExpectationSpec, RequestSpec, ResponseOutcome

__version__ = "0.1.0"

__all__ = [
    "ApiAssertError",
    "AssertionHandle",
    "AsyncHttpClient",
    "ClientConfig",
    "ConfigError",
    "ErrorKind",
    "Expect",
    "ExpectationSpec",
    "HttpClient",
    "InvalidArgumentError",
    "JsonParseError",
    "RequestSpec",
    "RequestTimeoutError",
    "ResponseOutcome",
    "TransportError",
    "client_config_from_url",
    "load_client_config",
]
