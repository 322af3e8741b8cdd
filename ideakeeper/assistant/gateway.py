# Assistant gateway client
#
# Sends invocations to the gateway server (ideakeeper.server) over HTTP for
# runtimes that cannot spawn the CLI themselves. requests is blocking, so each
# call runs in a worker thread to keep the event loop free.

import asyncio
import logging
from typing import Optional

import requests

from .actions import parse_actions
from .schema import HealthStatus, InvocationContext, InvocationErrorKind, InvocationResult

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/assistant/chat"
HEALTH_PATH = "/api/assistant/health"

# Slack on top of the server-side CLI timeout so the server reports it first
TIMEOUT_SLACK = 10


class GatewayBackend:
    """Invokes the assistant through the HTTP gateway."""

    name = "gateway"

    def __init__(self, base_url: str, timeout: int = 120, api_key: str = "",
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout + TIMEOUT_SLACK
        self.api_key = api_key
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def _post_chat(self, prompt: str, context: InvocationContext) -> InvocationResult:
        try:
            r = self.session.post(
                self.base_url + CHAT_PATH,
                json={"prompt": prompt, "context": context.to_dict()},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Gateway request failed: {e}")
            return InvocationResult.failure(
                f"Could not reach assistant gateway: {e}",
                InvocationErrorKind.TRANSPORT,
            )

        if not r.ok:
            try:
                error = (r.json() or {}).get("error")
            except ValueError:
                error = None
            return InvocationResult.failure(
                error or f"API request failed with status {r.status_code}",
                InvocationErrorKind.GATEWAY,
            )

        try:
            data = r.json() or {}
        except ValueError:
            return InvocationResult.failure(
                "Gateway returned a non-JSON response",
                InvocationErrorKind.BAD_OUTPUT,
            )

        parsed = parse_actions(data.get("message") or "", context.card_id)
        return InvocationResult(message=parsed.message, actions=parsed.actions)

    def _get_health(self) -> HealthStatus:
        try:
            r = self.session.get(self.base_url + HEALTH_PATH, timeout=TIMEOUT_SLACK)
        except requests.RequestException as e:
            logger.warning(f"Gateway health check failed: {e}")
            return HealthStatus(available=False, error=str(e))
        try:
            data = r.json() or {}
        except ValueError:
            data = {}
        if not r.ok:
            return HealthStatus(
                available=False,
                error=data.get("error") or f"Health check failed with status {r.status_code}",
            )
        return HealthStatus(
            available=bool(data.get("available")),
            version=data.get("version"),
            error=data.get("error"),
        )

    async def invoke(self, prompt: str, context: InvocationContext) -> InvocationResult:
        if not prompt or not prompt.strip():
            return InvocationResult.failure("Prompt cannot be empty", InvocationErrorKind.EMPTY_PROMPT)
        return await asyncio.to_thread(self._post_chat, prompt, context)

    async def check_health(self) -> HealthStatus:
        return await asyncio.to_thread(self._get_health)
