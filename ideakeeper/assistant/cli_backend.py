"""
Assistant CLI subprocess backend
─────────────────────────────────
Spawns the assistant CLI directly and turns its JSON reply into an
InvocationResult.

    <binary> -p <prompt> --output-format json [--system-prompt <text>]

Design constraints:
    - No shell. Prompt and system prompt travel as argv entries
    - Credential env vars removed so the CLI uses its interactive sign-in
    - Hard wall-clock timeout; the process is killed on expiry, never retried
    - Failures come back as data (error + error_kind), never as exceptions
    - No raw stack traces in user-facing error strings
"""

import asyncio
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from typing import Optional

from .actions import parse_actions
from .prompts import build_system_prompt
from .schema import HealthStatus, InvocationContext, InvocationErrorKind, InvocationResult

logger = logging.getLogger(__name__)

CLI_TIMEOUT = 120       # seconds; kill subprocess after this
HEALTH_TIMEOUT = 10     # seconds; `--version` should be instant

# Removed from the child environment. ANTHROPIC_API_KEY would switch the
# CLI to API-key auth; CLAUDECODE blocks spawning from inside a CLI session.
SCRUBBED_ENV_VARS = ("ANTHROPIC_API_KEY", "CLAUDECODE")

INSTALL_HINT = "https://docs.anthropic.com/en/docs/claude-code"
AUTH_ERROR = (
    "Authentication failed. Please sign in to the Claude CLI "
    "(run `claude` once interactively) and try again."
)

# Result text fields, in priority order, across CLI output versions
RESULT_FIELDS = ("result", "content", "response")


@dataclass
class CliResponse:
    """Raw CLI outcome: result text, or an error."""
    result: str = ""
    error: Optional[str] = None
    error_kind: Optional[InvocationErrorKind] = None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Utilities
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def sanitized_env(environ: Optional[dict] = None) -> dict:
    """Copy of the environment without credential overrides."""
    env = dict(os.environ if environ is None else environ)
    for name in SCRUBBED_ENV_VARS:
        env.pop(name, None)
    return env


def build_cli_args(
    prompt: str,
    system_prompt: Optional[str] = None,
    isolated: bool = False,
) -> list[str]:
    args = ["-p", prompt, "--output-format", "json"]
    if isolated:
        # No session files, no tools: the CLI must not touch the filesystem
        args += ["--no-session-persistence", "--tools", ""]
    if system_prompt and system_prompt.strip():
        args += ["--system-prompt", system_prompt]
    return args


def extract_result_text(payload) -> str:
    """
    Pull the reply text out of the CLI's JSON payload.

    Bare string first, then result/content/response, else the whole
    payload re-serialized.
    """
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        for key in RESULT_FIELDS:
            value = payload.get(key)
            if value:
                return value if isinstance(value, str) else json.dumps(value)
    return json.dumps(payload)


def classify_exit_failure(code: Optional[int], stdout: str, stderr: str) -> CliResponse:
    """Map a non-zero exit to an auth or generic exit error."""
    detail = stderr.strip() or stdout.strip() or f"Claude CLI exited with code {code}"
    # Best effort: the CLI has no structured error codes
    if "auth" in detail.lower():
        return CliResponse(error=AUTH_ERROR, error_kind=InvocationErrorKind.AUTH)
    return CliResponse(
        error=f"Claude CLI error: {detail}",
        error_kind=InvocationErrorKind.EXIT_STATUS,
    )


def parse_cli_output(stdout: str) -> CliResponse:
    output = stdout.strip()
    if not output:
        return CliResponse(
            error="Claude CLI returned empty output",
            error_kind=InvocationErrorKind.EMPTY_OUTPUT,
        )
    try:
        payload = json.loads(output)
    except json.JSONDecodeError as e:
        return CliResponse(
            error=f"Failed to parse Claude CLI JSON output: {e}",
            error_kind=InvocationErrorKind.BAD_OUTPUT,
        )
    return CliResponse(result=extract_result_text(payload))


async def _kill(proc: asyncio.subprocess.Process):
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Invocation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


async def invoke_cli(
    prompt: str,
    system_prompt: Optional[str] = None,
    *,
    binary: str = "claude",
    timeout: int = CLI_TIMEOUT,
    isolated: bool = False,
) -> CliResponse:
    """Run one CLI request. Never raises for expected failures."""
    if not prompt or not prompt.strip():
        return CliResponse(
            error="Prompt cannot be empty",
            error_kind=InvocationErrorKind.EMPTY_PROMPT,
        )

    args = build_cli_args(prompt, system_prompt, isolated=isolated)
    cwd = tempfile.gettempdir() if isolated else None

    start = time.monotonic()
    try:
        proc = await asyncio.create_subprocess_exec(
            binary, *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=sanitized_env(),
            cwd=cwd,
        )
    except FileNotFoundError:
        logger.error(f"Assistant CLI not found: {binary}")
        return CliResponse(
            error=f"Claude CLI not found. Please install it first: {INSTALL_HINT}",
            error_kind=InvocationErrorKind.NOT_INSTALLED,
        )
    except OSError as e:
        logger.error(f"Failed to spawn {binary}: {e}")
        return CliResponse(
            error=f"Failed to spawn Claude CLI: {e.strerror or e}",
            error_kind=InvocationErrorKind.SPAWN,
        )

    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        logger.error(f"Assistant CLI timed out after {timeout}s")
        return CliResponse(
            error=f"Claude CLI timeout after {timeout} seconds",
            error_kind=InvocationErrorKind.TIMEOUT,
        )
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    duration = time.monotonic() - start
    stdout = out.decode("utf-8", errors="replace")
    stderr = err.decode("utf-8", errors="replace")

    if proc.returncode != 0:
        response = classify_exit_failure(proc.returncode, stdout, stderr)
    else:
        response = parse_cli_output(stdout)

    if response.error:
        logger.warning(
            f"Assistant CLI failed: kind={response.error_kind.value}, "
            f"exit_code={proc.returncode}, duration={duration:.2f}s"
        )
    else:
        logger.info(f"Assistant CLI replied in {duration:.2f}s ({len(response.result)} chars)")
    return response


async def check_cli_health(*, binary: str = "claude", timeout: int = HEALTH_TIMEOUT) -> HealthStatus:
    """Run `<binary> --version` and report availability."""
    try:
        proc = await asyncio.create_subprocess_exec(
            binary, "--version",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        return HealthStatus(
            available=False,
            error=f"Claude CLI not installed. Install from: {INSTALL_HINT}",
        )
    except OSError as e:
        return HealthStatus(available=False, error=f"Claude CLI error: {e.strerror or e}")

    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        return HealthStatus(available=False, error=f"Claude CLI check timed out after {timeout} seconds")
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    if proc.returncode == 0:
        version = (out.decode("utf-8", errors="replace").strip()
                   or err.decode("utf-8", errors="replace").strip() or "unknown")
        return HealthStatus(available=True, version=version)
    return HealthStatus(
        available=False,
        error=f"Claude CLI check failed with exit code {proc.returncode}",
    )


class SubprocessBackend:
    """Invokes the assistant CLI in-process via asyncio subprocesses."""

    name = "subprocess"

    def __init__(self, binary: str = "claude", timeout: int = CLI_TIMEOUT,
                 isolated: bool = False, health_timeout: int = HEALTH_TIMEOUT):
        self.binary = binary
        self.timeout = timeout
        self.isolated = isolated
        self.health_timeout = health_timeout

    async def invoke(self, prompt: str, context: InvocationContext) -> InvocationResult:
        if not prompt or not prompt.strip():
            return InvocationResult.failure("Prompt cannot be empty", InvocationErrorKind.EMPTY_PROMPT)

        response = await invoke_cli(
            prompt,
            build_system_prompt(context),
            binary=self.binary,
            timeout=self.timeout,
            isolated=self.isolated,
        )
        if response.error:
            return InvocationResult.failure(response.error, response.error_kind)

        parsed = parse_actions(response.result, context.card_id)
        return InvocationResult(message=parsed.message, actions=parsed.actions)

    async def check_health(self) -> HealthStatus:
        return await check_cli_health(binary=self.binary, timeout=self.health_timeout)
