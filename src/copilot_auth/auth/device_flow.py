"""OAuth2 Device Authorization Grant (:rfc:`8628`) against GitHub.

For a headless terminal the user is shown a short code and a URL to open on
any device; meanwhile the CLI polls the token endpoint until the user
approves, declines, or the code expires.

Flow:
    1. POST ``client_id`` + ``scope`` to the device code endpoint to obtain
       ``device_code`` + ``user_code``.
    2. Show "Go to {verification_uri} and enter {user_code}".
    3. Poll the token endpoint, honouring ``authorization_pending`` and
       ``slow_down``, until a token arrives or a terminal error occurs.

The polling loop is an explicit state machine. :class:`DeviceFlow` holds the
state, :meth:`DeviceAuthorizer.step` performs exactly one transition, and
:func:`apply_poll_response` is the pure transition taken for a decoded
token-endpoint reply::

    REQUESTING_CODE --code--> POLLING --token--> SUCCEEDED
          |                     |  ^
          |                     |  +-- authorization_pending / slow_down /
          |                     |      transport error
          +------error----------+-----> FAILED(error)

Only transport-level failures (and 5xx replies that carry no OAuth error)
are retried while polling. Malformed replies and every OAuth error other
than ``authorization_pending``/``slow_down`` are terminal.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from copilot_auth.auth.http import (
    DEFAULT_TIMEOUT,
    DEVICE_SCOPE,
    GITHUB_COPILOT_CLIENT_ID,
    GITHUB_DEVICE_CODE_URL,
    GITHUB_TOKEN_URL,
    client_scope,
    decode_json_object,
    post_json,
    server_error,
)
from copilot_auth.exceptions import (
    AuthorizationCancelled,
    AuthorizationDenied,
    AuthorizationTimeout,
    AuthServerError,
    CopilotAuthError,
    DeviceCodeExpired,
    NetworkError,
)
from copilot_auth.models import DeviceCodeResponse, TokenResponse

logger = logging.getLogger(__name__)

DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
SLOW_DOWN_INCREMENT = 5
POLL_TIMEOUT_SECONDS = 15 * 60

ProgressCallback = Callable[[str], None]
Sleeper = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]


class FlowState(str, enum.Enum):
    """States of the device authorization flow."""

    REQUESTING_CODE = "requesting_code"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class DeviceFlow:
    """Mutable record of one device authorization attempt.

    Attributes:
        client_id: OAuth client id used for every request.
        state: Current :class:`FlowState`.
        code: The device code reply, once obtained.
        device_code: Device code being polled for.
        interval: Seconds to sleep before the next poll; grows on ``slow_down``.
        started_at: Clock reading when polling began.
        attempts: Number of token-endpoint polls issued so far.
        token: The token set, in ``SUCCEEDED``.
        error: The terminal error, in ``FAILED``.
    """

    client_id: str
    state: FlowState = FlowState.REQUESTING_CODE
    code: Optional[DeviceCodeResponse] = None
    device_code: Optional[str] = None
    interval: int = 5
    started_at: float = 0.0
    attempts: int = 0
    token: Optional[TokenResponse] = None
    error: Optional[CopilotAuthError] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (FlowState.SUCCEEDED, FlowState.FAILED)

    def start_polling(self, device_code: str, interval: int, started_at: float) -> None:
        self.device_code = device_code
        self.interval = max(interval, 1)
        self.started_at = started_at
        self.state = FlowState.POLLING

    def succeed(self, token: TokenResponse) -> None:
        self.token = token
        self.state = FlowState.SUCCEEDED

    def fail(self, error: CopilotAuthError) -> None:
        self.error = error
        self.state = FlowState.FAILED

    def result(self) -> TokenResponse:
        """Return the token of a finished flow, or raise its error."""
        if self.state is FlowState.FAILED:
            assert self.error is not None
            raise self.error
        if self.state is not FlowState.SUCCEEDED or self.token is None:
            raise RuntimeError(f"Device flow has not finished (state={self.state.value})")
        return self.token


def _notify(on_progress: Optional[ProgressCallback], message: str) -> None:
    if on_progress is not None:
        on_progress(message)


def apply_poll_response(
    flow: DeviceFlow,
    data: dict[str, Any],
    on_progress: Optional[ProgressCallback] = None,
) -> DeviceFlow:
    """Apply one decoded token-endpoint reply to *flow*.

    Args:
        flow: A flow in the ``POLLING`` state.
        data: The decoded JSON object from the token endpoint.
        on_progress: Optional progress callback.

    Returns:
        The same *flow*, transitioned in place.
    """
    error = data.get("error")
    if error == "authorization_pending":
        _notify(on_progress, "Waiting for authorization...")
    elif error == "slow_down":
        flow.interval += SLOW_DOWN_INCREMENT
        _notify(on_progress, "Slowing down polling...")
    elif error == "expired_token":
        flow.fail(DeviceCodeExpired("Device code expired. Please try again."))
    elif error == "access_denied":
        flow.fail(AuthorizationDenied("Authorization was denied."))
    elif error:
        description = data.get("error_description")
        flow.fail(
            AuthServerError(
                f"Authorization error: {description or error}",
                error=error,
                description=description,
            )
        )
    elif data.get("access_token"):
        try:
            flow.succeed(TokenResponse.model_validate(data))
        except ValidationError as exc:
            flow.fail(AuthServerError(f"Malformed token response: {exc}"))
    else:
        flow.fail(
            AuthServerError("Token endpoint returned neither an access token nor an error")
        )
    return flow


class DeviceAuthorizer:
    """Drive the device authorization handshake with GitHub.

    Args:
        client: Optional shared :class:`httpx.AsyncClient`.
        device_code_url: Device authorization endpoint.
        token_url: Token endpoint.
        scope: Requested OAuth scope.
        poll_timeout: Overall polling ceiling, in seconds.
        sleep: Awaitable sleeper; :func:`asyncio.sleep` by default.
        clock: Monotonic clock; :func:`time.monotonic` by default.
        timeout: Timeout for self-managed clients, in seconds.

    Example::

        authorizer = DeviceAuthorizer()
        code = await authorizer.request_device_code(client_id)
        print(f"Go to {code.verification_uri} and enter {code.user_code}")
        token = await authorizer.poll_for_authorization(
            code.device_code, code.interval, client_id, on_progress=print
        )
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        device_code_url: str = GITHUB_DEVICE_CODE_URL,
        token_url: str = GITHUB_TOKEN_URL,
        scope: str = DEVICE_SCOPE,
        poll_timeout: float = POLL_TIMEOUT_SECONDS,
        sleep: Sleeper = asyncio.sleep,
        clock: Clock = time.monotonic,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = client
        self._device_code_url = device_code_url
        self._token_url = token_url
        self._scope = scope
        self._poll_timeout = poll_timeout
        self._sleep = sleep
        self._clock = clock
        self._timeout = timeout

    async def request_device_code(
        self,
        client_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> DeviceCodeResponse:
        """POST to the device authorization endpoint.

        Args:
            client_id: OAuth client id; defaults to the Copilot app's id.
            client: Client to use for this call; overrides the injected one.

        Returns:
            The parsed :class:`~copilot_auth.models.DeviceCodeResponse`.

        Raises:
            NetworkError: On transport failure.
            AuthServerError: On a non-success status, an OAuth error reply, or
                a reply missing ``device_code``/``user_code``.
        """
        payload = {"client_id": client_id or GITHUB_COPILOT_CLIENT_ID, "scope": self._scope}
        async with client_scope(client or self._client, self._timeout) as http:
            response = await post_json(http, self._device_code_url, payload)

        if not response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = None
            raise server_error(
                "Device code request", response, body if isinstance(body, dict) else None
            )

        data = decode_json_object(response, "Device code request")
        if data.get("error"):
            raise server_error("Device code request", response, data)
        for field in ("device_code", "user_code"):
            if not data.get(field):
                raise AuthServerError(f"Device code response missing '{field}'")
        return DeviceCodeResponse.model_validate(data)

    async def step(
        self,
        flow: DeviceFlow,
        client: httpx.AsyncClient,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> DeviceFlow:
        """Advance *flow* by exactly one transition.

        In ``REQUESTING_CODE`` this requests the device code. In ``POLLING``
        it checks cancellation and the time ceiling, sleeps for the current
        interval, and issues one token-endpoint poll. Terminal flows are
        returned unchanged.
        """
        if flow.is_terminal:
            return flow

        if flow.state is FlowState.REQUESTING_CODE:
            try:
                code = await self.request_device_code(flow.client_id, client)
            except CopilotAuthError as exc:
                flow.fail(exc)
                return flow
            flow.code = code
            flow.start_polling(code.device_code, code.interval, self._clock())
            return flow

        if cancel is not None and cancel.is_set():
            flow.fail(AuthorizationCancelled("Authorization was cancelled."))
            return flow
        if self._clock() - flow.started_at >= self._poll_timeout:
            flow.fail(AuthorizationTimeout("Authorization timeout. Please try again."))
            return flow

        await self._sleep(flow.interval)
        if cancel is not None and cancel.is_set():
            flow.fail(AuthorizationCancelled("Authorization was cancelled."))
            return flow

        flow.attempts += 1
        assert flow.device_code is not None
        payload = {
            "client_id": flow.client_id,
            "device_code": flow.device_code,
            "grant_type": DEVICE_GRANT_TYPE,
        }
        try:
            response = await post_json(client, self._token_url, payload)
        except NetworkError as exc:
            return self._retry(flow, str(exc), on_progress)

        try:
            data = decode_json_object(response, "Authorization polling")
        except AuthServerError as exc:
            if response.is_server_error:
                return self._retry(flow, str(exc), on_progress)
            flow.fail(exc)
            return flow

        if response.is_server_error and not data.get("error"):
            return self._retry(flow, f"HTTP {response.status_code}", on_progress)
        return apply_poll_response(flow, data, on_progress)

    async def poll_for_authorization(
        self,
        device_code: str,
        interval: int,
        client_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> TokenResponse:
        """Poll the token endpoint until the user finishes authorizing.

        Args:
            device_code: The device code from :meth:`request_device_code`.
            interval: Initial polling interval in seconds.
            client_id: OAuth client id; defaults to the Copilot app's id.
            on_progress: Called with a short message after every
                non-terminal reply.
            cancel: Optional event checked between attempts.

        Returns:
            The token set.

        Raises:
            DeviceCodeExpired: The server reported ``expired_token``.
            AuthorizationDenied: The user declined.
            AuthorizationTimeout: Polling exceeded the time ceiling.
            AuthorizationCancelled: *cancel* was set.
            AuthServerError: Any other OAuth error or a malformed reply.
        """
        flow = DeviceFlow(client_id=client_id or GITHUB_COPILOT_CLIENT_ID)
        flow.start_polling(device_code, interval, self._clock())
        async with client_scope(self._client, self._timeout) as client:
            while not flow.is_terminal:
                await self.step(flow, client, on_progress, cancel)
        return flow.result()

    async def authorize(
        self,
        client_id: Optional[str] = None,
        on_code: Optional[Callable[[DeviceCodeResponse], None]] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> TokenResponse:
        """Run the whole flow: request a code, hand it to *on_code*, poll.

        Raises:
            NetworkError: If the device code request cannot be sent.
            CopilotAuthError: Any terminal error from the flow.
        """
        flow = DeviceFlow(client_id=client_id or GITHUB_COPILOT_CLIENT_ID)
        async with client_scope(self._client, self._timeout) as client:
            await self.step(flow, client, on_progress, cancel)
            if flow.state is FlowState.POLLING and on_code is not None:
                assert flow.code is not None
                on_code(flow.code)
            while not flow.is_terminal:
                await self.step(flow, client, on_progress, cancel)
        return flow.result()

    def _retry(
        self, flow: DeviceFlow, reason: str, on_progress: Optional[ProgressCallback]
    ) -> DeviceFlow:
        logger.warning("Transient error while polling for authorization: %s", reason)
        _notify(on_progress, f"Error during polling: {reason}")
        return flow
