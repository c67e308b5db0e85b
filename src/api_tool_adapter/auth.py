"""Outbound authenticators and their registry."""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple

import httpx

from .config import AuthConfig
from .errors import AuthenticationError


logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME = 3600.0


class TokenCache:
    """Single token slot; a token is only returned while ``now < expiry``."""

    def __init__(self) -> None:
        self._token: Optional[str] = None
        self._expiry: float = 0.0

    def get_token(self) -> Optional[str]:
        if self._token and time.time() < self._expiry:
            return self._token
        return None

    def set_token(self, token: str, expires_in: float = DEFAULT_TOKEN_LIFETIME) -> None:
        self._token, self._expiry = token, time.time() + expires_in


@dataclass(frozen=True)
class ConfigKey:
    key: str
    description: str
    required: bool = True


@dataclass(frozen=True)
class AuthenticatorMetadata:
    name: str
    description: str
    type: str
    config_keys: Tuple[ConfigKey, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "configKeys": [
                {"key": k.key, "description": k.description, "required": k.required}
                for k in self.config_keys
            ],
        }


class Authenticator(ABC):
    metadata: ClassVar[AuthenticatorMetadata]

    @abstractmethod
    async def authenticate(self, request: httpx.Request) -> None:
        """Mutate ``request`` in place just before it is sent."""

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: Mapping[str, str]) -> "Authenticator":
        raise NotImplementedError


class ApiKeyAuthenticator(Authenticator):
    metadata = AuthenticatorMetadata(
        name="API Key",
        description="Sends a static API key in a header or query parameter",
        type="apiKey",
        config_keys=(
            ConfigKey("apiKey", "The API key value"),
            ConfigKey("paramName", "Header or query parameter name (default X-API-Key)", False),
            ConfigKey("location", "Where to send the key: header or query (default header)", False),
        ),
    )

    def __init__(self, api_key: str, param_name: str = "X-API-Key", location: str = "header") -> None:
        self.api_key = api_key
        self.param_name = param_name
        self.location = location.lower()

    async def authenticate(self, request: httpx.Request) -> None:
        if self.location == "query":
            request.url = request.url.copy_merge_params({self.param_name: self.api_key})
        else:
            request.headers[self.param_name] = self.api_key

    @classmethod
    def from_settings(cls, settings: Mapping[str, str]) -> "ApiKeyAuthenticator":
        return cls(
            api_key=_require(settings, "apiKey"),
            param_name=settings.get("paramName") or "X-API-Key",
            location=settings.get("location") or "header",
        )


class BasicAuthenticator(Authenticator):
    metadata = AuthenticatorMetadata(
        name="Basic Authentication",
        description="HTTP Basic authentication with username and password",
        type="basicAuth",
        config_keys=(
            ConfigKey("username", "User name"),
            ConfigKey("password", "Password"),
        ),
    )

    def __init__(self, username: str, password: str) -> None:
        credentials = f"{username}:{password}".encode("utf-8")
        self._header = "Basic " + base64.b64encode(credentials).decode("ascii")

    async def authenticate(self, request: httpx.Request) -> None:
        request.headers["Authorization"] = self._header

    @classmethod
    def from_settings(cls, settings: Mapping[str, str]) -> "BasicAuthenticator":
        return cls(_require(settings, "username"), _require(settings, "password"))


class BearerTokenAuthenticator(Authenticator):
    metadata = AuthenticatorMetadata(
        name="Bearer Token",
        description="Sends a static bearer token in the Authorization header",
        type="bearer",
        config_keys=(ConfigKey("token", "The bearer token"),),
    )

    def __init__(self, token: str) -> None:
        self.token = token

    async def authenticate(self, request: httpx.Request) -> None:
        request.headers["Authorization"] = f"Bearer {self.token}"

    @classmethod
    def from_settings(cls, settings: Mapping[str, str]) -> "BearerTokenAuthenticator":
        return cls(_require(settings, "token"))


class CustomHeaderAuthenticator(Authenticator):
    metadata = AuthenticatorMetadata(
        name="Custom Header",
        description="Sends an arbitrary header with a fixed value",
        type="customHeader",
        config_keys=(
            ConfigKey("headerName", "Header name"),
            ConfigKey("headerValue", "Header value"),
        ),
    )

    def __init__(self, header_name: str, header_value: str) -> None:
        self.header_name = header_name
        self.header_value = header_value

    async def authenticate(self, request: httpx.Request) -> None:
        request.headers[self.header_name] = self.header_value

    @classmethod
    def from_settings(cls, settings: Mapping[str, str]) -> "CustomHeaderAuthenticator":
        return cls(_require(settings, "headerName"), _require(settings, "headerValue"))


class OAuth2ClientCredentialsAuthenticator(Authenticator):
    metadata = AuthenticatorMetadata(
        name="OAuth 2.0 Client Credentials",
        description="Fetches and caches an access token with the client credentials grant",
        type="oAuth",
        config_keys=(
            ConfigKey("tokenUrl", "Token endpoint URL"),
            ConfigKey("clientId", "Client id"),
            ConfigKey("clientSecret", "Client secret"),
            ConfigKey("scope", "Requested scope (default api)", False),
        ),
    )

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scope: str = "api",
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30,
    ) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.cache = TokenCache()
        self._client = client
        self._timeout_seconds = timeout_seconds
        self._lock = asyncio.Lock()

    async def authenticate(self, request: httpx.Request) -> None:
        token = await self.get_access_token()
        request.headers["Authorization"] = f"Bearer {token}"

    async def get_access_token(self) -> str:
        token = self.cache.get_token()
        if token:
            return token
        async with self._lock:
            token = self.cache.get_token()
            if token:
                return token
            return await self._fetch_token()

    async def _fetch_token(self) -> str:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }
        try:
            if self._client is not None:
                response = await self._client.post(self.token_url, data=form)
            else:
                async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                    response = await client.post(self.token_url, data=form)
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"Token request to {self.token_url} failed: {exc}") from exc

        if not response.is_success:
            raise AuthenticationError(
                f"Token request to {self.token_url} failed ({response.status_code}): {response.text}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthenticationError("Token endpoint returned invalid JSON") from exc

        if not isinstance(payload, dict):
            raise AuthenticationError("Token endpoint response is not a JSON object")
        token = payload.get("access_token")
        if not token or not isinstance(token, str):
            raise AuthenticationError("Token endpoint response has no access_token")
        self.cache.set_token(token, _expires_in(payload.get("expires_in")))
        logger.info("Obtained OAuth access token from %s", self.token_url)
        return token

    @classmethod
    def from_settings(cls, settings: Mapping[str, str]) -> "OAuth2ClientCredentialsAuthenticator":
        return cls(
            token_url=_require(settings, "tokenUrl"),
            client_id=_require(settings, "clientId"),
            client_secret=_require(settings, "clientSecret"),
            scope=settings.get("scope") or "api",
        )


class AuthType(str, Enum):
    API_KEY = "apiKey"
    BASIC = "basicAuth"
    BEARER = "bearer"
    CUSTOM_HEADER = "customHeader"
    OAUTH2 = "oAuth"

    @classmethod
    def parse(cls, value: str) -> Optional["AuthType"]:
        lowered = value.strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return _AUTH_TYPE_ALIASES.get(lowered)


_AUTH_TYPE_ALIASES = {
    "api_key": AuthType.API_KEY,
    "basic": AuthType.BASIC,
    "oauth2": AuthType.OAUTH2,
    "oauth": AuthType.OAUTH2,
    "custom_header": AuthType.CUSTOM_HEADER,
}

AuthenticatorFactory = Callable[[Mapping[str, str]], Authenticator]

_BUILTIN: Dict[AuthType, type] = {
    AuthType.API_KEY: ApiKeyAuthenticator,
    AuthType.BASIC: BasicAuthenticator,
    AuthType.BEARER: BearerTokenAuthenticator,
    AuthType.CUSTOM_HEADER: CustomHeaderAuthenticator,
    AuthType.OAUTH2: OAuth2ClientCredentialsAuthenticator,
}


class AuthenticatorRegistry:
    """Factories keyed by type id; built-ins come from ``default()``."""

    def __init__(self) -> None:
        self._factories: Dict[str, Tuple[AuthenticatorFactory, AuthenticatorMetadata]] = {}

    @classmethod
    def default(cls) -> "AuthenticatorRegistry":
        registry = cls()
        for auth_type, authenticator_cls in _BUILTIN.items():
            registry.register(auth_type.value, authenticator_cls.from_settings, authenticator_cls.metadata)
        return registry

    def register(
        self,
        type_id: str,
        factory: AuthenticatorFactory,
        metadata: Optional[AuthenticatorMetadata] = None,
    ) -> None:
        metadata = metadata or AuthenticatorMetadata(name=type_id, description="", type=type_id)
        self._factories[type_id.lower()] = (factory, metadata)

    def create(self, config: AuthConfig) -> Authenticator:
        entry = self._factories.get(config.type.lower())
        if entry is None:
            auth_type = AuthType.parse(config.type)
            if auth_type is not None:
                entry = self._factories.get(auth_type.value.lower())
        if entry is None:
            raise ValueError(f"Unsupported authentication type: {config.type}")
        factory, _ = entry
        return factory(config.settings)

    def list_available(self) -> List[Dict[str, Any]]:
        return [metadata.to_dict() for _, metadata in self._factories.values()]


def _require(settings: Mapping[str, str], key: str) -> str:
    value = settings.get(key)
    if not value:
        raise ValueError(f"Authentication setting '{key}' is required")
    return value


def _expires_in(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return DEFAULT_TOKEN_LIFETIME
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring unusable expires_in %r; assuming %.0fs", value, DEFAULT_TOKEN_LIFETIME)
        return DEFAULT_TOKEN_LIFETIME
