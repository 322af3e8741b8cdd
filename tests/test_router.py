"""
Tests for backend selection and the invocation router.

Covers:
    - can_spawn_processes()  — PATH lookup, never raises
    - select_backend()       — forced choices and auto resolution
    - AssistantRouter        — delegation, empty prompt guard, exceptions as data
"""

import asyncio
from unittest.mock import AsyncMock, patch

from ideakeeper.assistant.cli_backend import SubprocessBackend
from ideakeeper.assistant.gateway import GatewayBackend
from ideakeeper.assistant.router import AssistantRouter, can_spawn_processes, select_backend
from ideakeeper.assistant.schema import InvocationContext, InvocationErrorKind, InvocationResult
from ideakeeper.config import AssistantConfig

WHICH = "ideakeeper.assistant.router.shutil.which"


class TestCanSpawnProcesses:

    def test_found(self):
        with patch(WHICH, return_value="/usr/local/bin/claude"):
            assert can_spawn_processes("claude") is True

    def test_missing(self):
        with patch(WHICH, return_value=None):
            assert can_spawn_processes("claude") is False

    def test_lookup_error(self):
        with patch(WHICH, side_effect=OSError("no PATH")):
            assert can_spawn_processes("claude") is False


class TestSelectBackend:

    def test_forced_subprocess(self):
        cfg = AssistantConfig(backend="subprocess", cli_binary="claude-x", cli_timeout=30)
        backend = select_backend(cfg)
        assert isinstance(backend, SubprocessBackend)
        assert backend.binary == "claude-x"
        assert backend.timeout == 30

    def test_forced_gateway(self):
        cfg = AssistantConfig(backend="gateway", gateway_url="http://gw:9000", api_secret="k")
        backend = select_backend(cfg)
        assert isinstance(backend, GatewayBackend)
        assert backend.base_url == "http://gw:9000"
        assert backend.api_key == "k"

    def test_auto_prefers_subprocess(self):
        with patch(WHICH, return_value="/usr/bin/claude"):
            assert isinstance(select_backend(AssistantConfig()), SubprocessBackend)

    def test_auto_falls_back_to_gateway(self):
        with patch(WHICH, return_value=None):
            assert isinstance(select_backend(AssistantConfig()), GatewayBackend)

    def test_forced_choice_skips_lookup(self):
        with patch(WHICH) as which:
            select_backend(AssistantConfig(backend="gateway"))
        which.assert_not_called()


class TestAssistantRouter:

    def test_delegates(self, fake_backend):
        router = AssistantRouter(fake_backend)
        ctx = InvocationContext(idea_title="Launch")
        result = asyncio.run(router.send_message("hi", ctx))
        assert result.message == "ok"
        fake_backend.invoke.assert_awaited_once_with("hi", ctx)

    def test_empty_prompt_skips_backend(self, fake_backend):
        router = AssistantRouter(fake_backend)
        result = asyncio.run(router.send_message(" \n ", InvocationContext()))
        fake_backend.invoke.assert_not_called()
        assert result.error_kind is InvocationErrorKind.EMPTY_PROMPT

    def test_backend_exception_becomes_error(self, fake_backend):
        fake_backend.invoke = AsyncMock(side_effect=RuntimeError("socket exploded"))
        result = asyncio.run(AssistantRouter(fake_backend).send_message("hi", InvocationContext()))
        assert result.error_kind is InvocationErrorKind.UNEXPECTED
        assert result.message == ""
        assert "socket exploded" not in result.error

    def test_error_result_passed_through(self, fake_backend):
        fake_backend.invoke = AsyncMock(return_value=InvocationResult.failure(
            "Claude CLI timeout after 5 seconds", InvocationErrorKind.TIMEOUT))
        result = asyncio.run(AssistantRouter(fake_backend).send_message("hi", InvocationContext()))
        assert result.error == "Claude CLI timeout after 5 seconds"

    def test_health(self, fake_backend):
        status = asyncio.run(AssistantRouter(fake_backend).check_health())
        assert status.available is True

    def test_health_exception(self, fake_backend):
        fake_backend.check_health = AsyncMock(side_effect=ValueError("bad"))
        status = asyncio.run(AssistantRouter(fake_backend).check_health())
        assert status.available is False

    def test_from_config(self):
        router = AssistantRouter.from_config(AssistantConfig(backend="gateway"))
        assert router.backend.name == "gateway"
