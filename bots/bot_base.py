#!/usr/bin/env python3
"""
Idea Keeper Bot Base
────────────────────
Shared logic for Idea Keeper Telegram bots.
A bot subclasses BotBase and registers its handlers.

Components:
    BotConfig       — resolves one bot's section of ideakeeper.yaml (token, allowlist, audit path)
    AuditLogger     — appends structured JSON lines to audit log
    BotBase         — base class with auth, help, and the polling lifecycle

Dependencies:
    pip install python-telegram-bot==20.* pyyaml

Usage:
    See assistant_bot.py
"""

import json
import logging
import os
import sys
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from telegram import BotCommand, Update
from telegram.ext import Application, CommandHandler, ContextTypes

from ideakeeper.config import AssistantConfig, ConfigError

logger = logging.getLogger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Utilities
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def utc_now() -> str:
    """ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def make_event_id() -> str:
    """Sortable unique audit event ID (ms-precision timestamp + random hex)."""
    ts = int(time.time() * 1000)
    rand = uuid.uuid4().hex[:8]
    return f"evt-{ts}-{rand}"


def truncate(text: str, max_chars: int = 3500) -> str:
    """Truncate text to fit in a single Telegram message (4096 char limit)."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + f"\n…[truncated, {len(text) - max_chars} chars omitted]"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BotConfig — per-bot settings
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class BotConfig:
    """
    Settings for a single bot, taken from the `bots:` section.

    Resolves the bot token from the environment variable named by
    token_env and builds the user allowlist.
    """

    def __init__(self, cfg: AssistantConfig, bot_name: str,
                 environ: Optional[Dict[str, str]] = None):
        environ = os.environ if environ is None else environ
        self.bot_name = bot_name

        bots = cfg.bots or {}
        if bot_name not in bots:
            raise ConfigError(
                f"Bot '{bot_name}' not found in config. "
                f"Available: {list(bots.keys())}"
            )
        self.bot_cfg = bots[bot_name] or {}

        # ── Resolve token from environment ──
        token_env = self.bot_cfg.get("token_env")
        if not token_env:
            raise ConfigError(f"Bot '{bot_name}' has no token_env configured")
        self.token = environ.get(token_env)
        if not self.token:
            raise ConfigError(
                f"Environment variable {token_env} is not set.\n"
                f"Set it:  export {token_env}=your_bot_token\n"
                f"Get a token from @BotFather on Telegram."
            )

        # ── Allowlist (numeric Telegram user IDs as strings for comparison) ──
        self.allowed_users = [
            str(uid) for uid in self.bot_cfg.get("allowed_users", [])
        ]

        # ── Audit log path ──
        self.audit_log = Path(cfg.audit_log)
        try:
            self.audit_log.parent.mkdir(parents=True, exist_ok=True)
            self.audit_log.touch(exist_ok=True)
        except PermissionError:
            fallback = Path(__file__).parent.parent / "logs" / "audit.jsonl"
            fallback.parent.mkdir(parents=True, exist_ok=True)
            fallback.touch(exist_ok=True)
            logger.warning(f"Cannot write to {self.audit_log}, using {fallback}")
            self.audit_log = fallback

    def is_authorized(self, user_id: int) -> bool:
        """Check if a Telegram user ID is in the allowlist."""
        return str(user_id) in self.allowed_users


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# AuditLogger — JSONL audit trail
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class AuditLogger:
    """
    Appends structured JSON audit entries to a .jsonl file.
    Every assistant request and every approve/dismiss decision is recorded.
    """

    def __init__(self, log_path: Path):
        self.log_path = log_path

    def log(
        self,
        user_id: int,
        username: str,
        bot: str,
        command: str,
        status: str,
        **extra,
    ):
        """Append one audit entry. Extra kwargs are merged in."""
        entry = {
            "ts": utc_now(),
            "event_id": make_event_id(),
            "user_id": user_id,
            "username": username,
            "bot": bot,
            "command": command,
            "status": status,
        }
        for k, v in extra.items():
            if v is not None:
                entry[k] = v

        try:
            with open(self.log_path, "a") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.error(f"Failed to write audit log: {e}")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BotBase — base class for Idea Keeper bots
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class BotBase:
    """
    Base class for Idea Keeper bots.

    Subclass contract:
        1. Call super().__init__(cfg, bot_name)
        2. Override register_handlers() — call super() then add own handlers
        3. Override command_help() to list the bot's commands
        4. Call self.run() to start the bot
    """

    def __init__(self, cfg: AssistantConfig, bot_name: str,
                 environ: Optional[Dict[str, str]] = None):
        self.app_cfg = cfg
        self.cfg = BotConfig(cfg, bot_name, environ)
        self.audit = AuditLogger(self.cfg.audit_log)

        logging.basicConfig(
            level=logging.INFO,
            format=f"%(asctime)s [{bot_name}] %(levelname)s: %(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )

    # ──────────────────────────────────────────
    # Auth helpers
    # ──────────────────────────────────────────

    def _is_authorized(self, update: Update) -> bool:
        """Check if the message sender is in the allowlist."""
        return self.cfg.is_authorized(update.effective_user.id)

    async def _reject_unauthorized(self, update: Update):
        """Log and reply to unauthorized access attempts."""
        user = update.effective_user
        logger.warning(
            f"Unauthorized access attempt: user_id={user.id}, "
            f"username={user.username}, name={user.full_name}"
        )
        self.audit_event(update, "UNAUTHORIZED", "rejected")
        await update.message.reply_text(
            "⛔ Unauthorized. This incident has been logged."
        )

    def audit_event(self, update: Update, command: str, status: str, **extra):
        user = update.effective_user
        self.audit.log(
            user_id=user.id,
            username=user.username or "",
            bot=self.cfg.bot_name,
            command=command,
            status=status,
            **extra,
        )

    # ──────────────────────────────────────────
    # Help handler
    # ──────────────────────────────────────────

    def command_help(self) -> List[Tuple[str, str]]:
        """(usage, description) pairs for /help and the Telegram menu."""
        return []

    async def handle_help(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ):
        """Handle /help — list commands."""
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        lines = [f"{self.cfg.bot_name} — Commands\n"]
        for usage, desc in self.command_help():
            lines.append(f"/{usage}")
            lines.append(f"  ↳ {desc}\n")
        lines.append("/help — show this message")
        await update.message.reply_text("\n".join(lines))

    # ──────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────

    def register_handlers(self, app: Application):
        """
        Register base command handlers.
        Subclasses MUST call super().register_handlers(app)
        before adding their own handlers.
        """
        app.add_handler(CommandHandler("help", self.handle_help))
        app.add_handler(CommandHandler("start", self.handle_help))

    async def set_bot_commands(self, app: Application):
        """Set command suggestions in Telegram UI (autocomplete menu)."""
        commands = []
        for usage, desc in self.command_help():
            commands.append(BotCommand(usage.split()[0], desc[:256]))
        commands.append(BotCommand("help", "Show available commands"))
        await app.bot.set_my_commands(commands)

    def run(self):
        """Build Telegram Application, register handlers, and start polling."""
        app = Application.builder().token(self.cfg.token).build()
        self.register_handlers(app)

        async def post_init(application):
            await self.set_bot_commands(application)

        app.post_init = post_init
        logger.info(f"Starting {self.cfg.bot_name}…")
        app.run_polling(drop_pending_updates=True)
