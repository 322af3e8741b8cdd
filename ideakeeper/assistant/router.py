"""
Invocation router.

The rest of the app talks to one async contract (send_message,
check_health). Which backend sits behind it is decided once, at startup,
by select_backend.
"""
import logging
import shutil
from typing import Protocol

from ideakeeper.config import AssistantConfig
from .cli_backend import SubprocessBackend
from .gateway import GatewayBackend
from .schema import HealthStatus, InvocationContext, InvocationErrorKind, InvocationResult

logger = logging.getLogger(__name__)


class Backend(Protocol):
    name: str

    async def invoke(self, prompt: str, context: InvocationContext) -> InvocationResult: ...

    async def check_health(self) -> HealthStatus: ...


def can_spawn_processes(binary: str) -> bool:
    """True when this runtime can launch the assistant CLI directly. Never raises."""
    try:
        return shutil.which(binary) is not None
    except Exception as e:
        logger.debug(f"Spawn capability check failed: {e}")
        return False


def select_backend(cfg: AssistantConfig) -> Backend:
    """Pick the backend for this process from config and runtime capability."""
    choice = cfg.backend
    if choice == "auto":
        choice = "subprocess" if can_spawn_processes(cfg.cli_binary) else "gateway"

    if choice == "subprocess":
        backend = SubprocessBackend(
            binary=cfg.cli_binary,
            timeout=cfg.cli_timeout,
            isolated=cfg.cli_isolated,
            health_timeout=cfg.health_timeout,
        )
    else:
        backend = GatewayBackend(cfg.gateway_url, timeout=cfg.cli_timeout, api_key=cfg.api_secret)

    logger.info(f"Assistant backend: {backend.name} (configured: {cfg.backend})")
    return backend


class AssistantRouter:
    """Uniform async entry point. Errors leave this boundary as data only."""

    def __init__(self, backend: Backend):
        self.backend = backend

    @classmethod
    def from_config(cls, cfg: AssistantConfig) -> "AssistantRouter":
        return cls(select_backend(cfg))

    async def send_message(self, prompt: str, context: InvocationContext) -> InvocationResult:
        if not prompt or not prompt.strip():
            return InvocationResult.failure("Prompt cannot be empty", InvocationErrorKind.EMPTY_PROMPT)
        try:
            return await self.backend.invoke(prompt, context)
        except Exception as e:
            logger.error(f"{self.backend.name} backend raised: {e}", exc_info=True)
            return InvocationResult.failure(
                f"Assistant request failed: {type(e).__name__}",
                InvocationErrorKind.UNEXPECTED,
            )

    async def check_health(self) -> HealthStatus:
        try:
            return await self.backend.check_health()
        except Exception as e:
            logger.error(f"{self.backend.name} health check raised: {e}", exc_info=True)
            return HealthStatus(available=False, error=f"Health check failed: {type(e).__name__}")
