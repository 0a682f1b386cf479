"""OAuth2 Device Authorization Grant client (RFC 8628) and refresh grant."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from .errors import (
    AuthDenied,
    AuthExpired,
    NetworkError,
    ProviderError,
)
from .http_utils import HttpResponse, Transport, error_details, request_json
from .logging_utils import get_logger

log = get_logger(__name__)

DEVICE_CODE_URL = "https://oauth2.googleapis.com/device/code"
TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_SCOPE = "https://www.googleapis.com/auth/youtube.readonly"
DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
REFRESH_GRANT_TYPE = "refresh_token"

DEFAULT_POLL_INTERVAL = 5.0
SLOW_DOWN_INCREMENT = 5.0
DEFAULT_TOKEN_LIFETIME = 3600


@dataclass(slots=True)
class Credential:
    """Tokens issued by the provider together with their absolute expiry."""

    access_token: str
    refresh_token: str
    expires_at: float
    scope: str = ""

    @classmethod
    def from_token_response(
        cls,
        payload: Mapping[str, Any],
        *,
        issued_at: float,
        previous: Optional["Credential"] = None,
    ) -> "Credential":
        """Build a credential from a token endpoint response issued at *issued_at*.

        Refresh responses usually omit ``refresh_token`` (and sometimes
        ``scope``); those are carried over from *previous*.
        """

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ProviderError("Token response did not include an access token")
        refresh_token = payload.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token:
            refresh_token = previous.refresh_token if previous is not None else ""
        scope = payload.get("scope")
        if not isinstance(scope, str) or not scope:
            scope = previous.scope if previous is not None else ""
        try:
            lifetime = int(payload.get("expires_in", DEFAULT_TOKEN_LIFETIME))
        except (TypeError, ValueError):
            lifetime = DEFAULT_TOKEN_LIFETIME
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=issued_at + lifetime,
            scope=scope,
        )

    def seconds_remaining(self, now: float) -> float:
        return self.expires_at - now

    def as_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "scope": self.scope,
        }


@dataclass(slots=True)
class DeviceGrantState:
    """One in-progress device authorization attempt."""

    device_code: str
    user_code: str
    verification_url: str
    poll_interval: float
    expires_at: float
    verification_url_complete: Optional[str] = None

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class DeviceAuthClient:
    """Talk to the provider's device-authorization and token endpoints."""

    def __init__(
        self,
        client_id: str,
        client_secret: Optional[str] = None,
        *,
        scope: str = DEFAULT_SCOPE,
        device_code_url: str = DEVICE_CODE_URL,
        token_url: str = TOKEN_URL,
        transport: Transport = request_json,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not client_id:
            raise ValueError("client_id is required")
        self.client_id = client_id
        self.client_secret = client_secret or None
        self.scope = scope
        self._device_code_url = device_code_url
        self._token_url = token_url
        self._transport = transport
        self._sleep = sleep
        self._clock = clock

    def _client_fields(self) -> dict[str, str]:
        fields = {"client_id": self.client_id}
        if self.client_secret:
            fields["client_secret"] = self.client_secret
        return fields

    @staticmethod
    def _provider_error(response: HttpResponse, context: str) -> ProviderError:
        code, description = error_details(response)
        return ProviderError(
            f"{context}: {description}", code=code, status=response.status
        )

    async def begin(self) -> DeviceGrantState:
        """Request a device/user code pair."""

        data = {"client_id": self.client_id, "scope": self.scope}
        log.info("Requesting device code from %s", self._device_code_url)
        response = await self._transport(self._device_code_url, data=data)
        if not response.ok:
            raise self._provider_error(response, "Device code request rejected")
        payload = response.payload if isinstance(response.payload, dict) else {}
        device_code = payload.get("device_code")
        user_code = payload.get("user_code")
        verification_url = payload.get("verification_url") or payload.get("verification_uri")
        if not (device_code and user_code and verification_url):
            raise ProviderError("Device code response is missing required fields")
        try:
            interval = float(payload.get("interval", DEFAULT_POLL_INTERVAL))
        except (TypeError, ValueError):
            interval = DEFAULT_POLL_INTERVAL
        try:
            expires_in = float(payload.get("expires_in", 0))
        except (TypeError, ValueError):
            expires_in = 0.0
        if expires_in <= 0:
            raise ProviderError("Device code response has no usable lifetime")
        complete = payload.get("verification_url_complete") or payload.get(
            "verification_uri_complete"
        )
        state = DeviceGrantState(
            device_code=str(device_code),
            user_code=str(user_code),
            verification_url=str(verification_url),
            poll_interval=max(1.0, interval),
            expires_at=self._clock() + expires_in,
            verification_url_complete=str(complete) if complete else None,
        )
        log.info(
            "Device code issued; user code %s at %s (poll every %.0fs, expires in %.0fs)",
            state.user_code,
            state.verification_url,
            state.poll_interval,
            expires_in,
        )
        return state

    async def poll(self, state: DeviceGrantState) -> Credential:
        """Poll the token endpoint until the user acts or the code expires."""

        data = {
            **self._client_fields(),
            "device_code": state.device_code,
            "grant_type": DEVICE_GRANT_TYPE,
        }
        while True:
            if state.expired(self._clock()):
                raise AuthExpired("The sign-in code expired before it was approved")
            await self._sleep(state.poll_interval)
            if state.expired(self._clock()):
                raise AuthExpired("The sign-in code expired before it was approved")
            try:
                response = await self._transport(self._token_url, data=data)
            except NetworkError as exc:
                log.warning("Device token poll failed, retrying: %s", exc)
                continue
            issued_at = self._clock()
            if response.ok and response.field("access_token"):
                log.info("Device authorization approved")
                return Credential.from_token_response(response.payload, issued_at=issued_at)
            code, description = error_details(response)
            if code == "authorization_pending":
                log.debug("Authorization pending for user code %s", state.user_code)
                continue
            if code == "slow_down":
                state.poll_interval += SLOW_DOWN_INCREMENT
                log.info("Provider asked to slow down; polling every %.0fs", state.poll_interval)
                continue
            if code == "access_denied":
                raise AuthDenied("Sign-in was denied")
            if code == "expired_token":
                raise AuthExpired("The sign-in code expired before it was approved")
            raise ProviderError(
                f"Device authorization failed: {description}",
                code=code,
                status=response.status,
            )

    async def refresh(self, credential: Credential) -> Credential:
        """Exchange the refresh token of *credential* for a new access token."""

        if not credential.refresh_token:
            raise ProviderError("No refresh token available", code="invalid_grant")
        data = {
            **self._client_fields(),
            "refresh_token": credential.refresh_token,
            "grant_type": REFRESH_GRANT_TYPE,
        }
        log.debug("Refreshing access token")
        response = await self._transport(self._token_url, data=data)
        if not response.ok:
            raise self._provider_error(response, "Token refresh rejected")
        return Credential.from_token_response(
            response.payload, issued_at=self._clock(), previous=credential
        )


__all__ = [
    "DEFAULT_SCOPE",
    "DEVICE_GRANT_TYPE",
    "Credential",
    "DeviceAuthClient",
    "DeviceGrantState",
]
