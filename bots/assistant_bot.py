#!/usr/bin/env python3
"""
Idea Keeper Assistant Bot
─────────────────────────
Chat with the assistant about your idea boards. Replies may carry proposed
card changes; nothing touches the board until you approve it.

Setup:
    export IDEAKEEPER_ASSISTANT_BOT_TOKEN=your_token_here
    python assistant_bot.py [--config config/ideakeeper.yaml]

Private chats: every plain message goes to the assistant.
Groups: only messages that mention the trigger (default @claude).

Commands:
    /ideas                 list ideas
    /newidea <title>       create an idea
    /select <idea_id>      pick the idea the assistant works on
    /pending               list proposals awaiting a decision
    /approve <n>           apply proposal n
    /dismiss <n>           drop proposal n
    /dismiss_all           drop every pending proposal
    /comment <card_id> <text>
                           comment on a card; a mention asks the assistant
                           about that card, and /pending, /approve, /dismiss
                           then act on its thread until the next plain message
    /reset                 clear the conversation
    /health                check the assistant backend
    /brainstorm [card_id]  Gemini suggestions for the idea or one card
    /help
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from telegram import Update
from telegram.constants import ChatAction, ChatType
from telegram.ext import CommandHandler, ContextTypes, MessageHandler, filters

# Allow running from project root or bots/ directory
sys.path.insert(0, str(Path(__file__).parent))
from bot_base import BotBase, truncate

from ideakeeper.assistant.applier import MutationApplier
from ideakeeper.assistant.brainstorm import brainstorm_card, brainstorm_idea
from ideakeeper.assistant.conversation import ConversationController
from ideakeeper.assistant.mentions import contains_mention, extract_directive
from ideakeeper.assistant.router import AssistantRouter
from ideakeeper.board.context import build_card_context, build_global_context
from ideakeeper.board.store import BoardStore
from ideakeeper.config import AssistantConfig, ConfigError

logger = logging.getLogger(__name__)

BOT_NAME = "assistant_bot"
ASSISTANT_AUTHOR = "Claude"


@dataclass
class UserSession:
    """Per-user chat state: the conversation, the idea it targets, and card threads.

    Each card thread keeps its own proposal queue. The proposal commands act
    on the thread last commented on, until the next plain message.
    """
    controller: ConversationController
    applier: MutationApplier
    idea_id: Optional[str] = None
    threads: Dict[str, ConversationController] = field(default_factory=dict)
    active_card_id: Optional[str] = None

    def select(self, idea_id: str):
        self.idea_id = idea_id
        self.applier.idea_id = idea_id
        self.threads = {}
        self.active_card_id = None

    def thread(self, card_id: str) -> ConversationController:
        controller = self.threads.get(card_id)
        if controller is None:
            controller = ConversationController(self.controller.router, self.applier)
            self.threads[card_id] = controller
        return controller

    def active(self) -> ConversationController:
        if self.active_card_id is not None:
            return self.thread(self.active_card_id)
        return self.controller


def format_pending(controller: ConversationController) -> str:
    if not controller.pending:
        return "ℹ️ No pending proposals."
    lines = ["Proposed changes:"]
    for i, proposal in enumerate(controller.pending, start=1):
        lines.append(f"{i}. {proposal.describe()}")
    lines.append("\n/approve <n> · /dismiss <n> · /dismiss_all")
    return "\n".join(lines)


def parse_index(args) -> Optional[int]:
    """1-based command argument → 0-based index, None when missing or not a number."""
    if not args:
        return None
    try:
        return int(args[0]) - 1
    except ValueError:
        return None


class AssistantBot(BotBase):

    def __init__(self, cfg: AssistantConfig, router: Optional[AssistantRouter] = None,
                 store: Optional[BoardStore] = None, environ=None):
        super().__init__(cfg, BOT_NAME, environ)
        self.store = store or BoardStore(cfg.db_path)
        # Backend chosen once for the life of the bot
        self.router = router or AssistantRouter.from_config(cfg)
        self.sessions: Dict[int, UserSession] = {}

    def session_for(self, user_id: int) -> UserSession:
        session = self.sessions.get(user_id)
        if session is None:
            applier = MutationApplier(self.store)
            session = UserSession(
                controller=ConversationController(self.router, applier),
                applier=applier,
            )
            self.sessions[user_id] = session
        return session

    def command_help(self):
        return [
            ("ideas", "List ideas"),
            ("newidea <title>", "Create an idea"),
            ("select <idea_id>", "Choose the idea the assistant works on"),
            ("pending", "List proposals awaiting approval"),
            ("approve <n>", "Apply proposal n"),
            ("dismiss <n>", "Drop proposal n"),
            ("dismiss_all", "Drop every pending proposal"),
            ("comment <card_id> <text>", "Comment on a card; mention @claude to ask about it"),
            ("reset", "Clear the conversation"),
            ("health", "Check the assistant backend"),
            ("brainstorm [card_id]", "Suggestions for the idea or one card"),
        ]

    def register_handlers(self, app):
        super().register_handlers(app)  # registers /help, /start
        app.add_handler(CommandHandler("ideas", self.cmd_ideas))
        app.add_handler(CommandHandler("newidea", self.cmd_new_idea))
        app.add_handler(CommandHandler("select", self.cmd_select))
        app.add_handler(CommandHandler("pending", self.cmd_pending))
        app.add_handler(CommandHandler("approve", self.cmd_approve))
        app.add_handler(CommandHandler("dismiss", self.cmd_dismiss))
        app.add_handler(CommandHandler("dismiss_all", self.cmd_dismiss_all))
        app.add_handler(CommandHandler("comment", self.cmd_comment))
        app.add_handler(CommandHandler("reset", self.cmd_reset))
        app.add_handler(CommandHandler("health", self.cmd_health))
        app.add_handler(CommandHandler("brainstorm", self.cmd_brainstorm))
        app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.handle_message))

    # ──────────────────────────────────────────
    # Chat
    # ──────────────────────────────────────────

    def _directive(self, update: Update) -> Optional[str]:
        """Text to send, or None when the message is not for the assistant."""
        text = update.message.text or ""
        trigger = self.app_cfg.mention_trigger
        if contains_mention(text, trigger):
            return extract_directive(text, trigger)
        if update.effective_chat.type == ChatType.PRIVATE:
            return text.strip()
        return None

    async def handle_message(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ):
        directive = self._directive(update)
        if not directive:
            return
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        session = self.session_for(update.effective_user.id)
        session.active_card_id = None
        controller = session.controller
        if controller.is_thinking:
            await update.message.reply_text("⏳ Still working on your last message.")
            return

        selected = self.store.get_idea(session.idea_id) if session.idea_id else None
        invocation_ctx = build_global_context(self.store.list_ideas(), selected)

        await update.effective_chat.send_action(ChatAction.TYPING)
        result = await controller.send_message(directive, invocation_ctx)
        self.audit_event(
            update, "chat", "error" if controller.error else "ok",
            idea_id=session.idea_id,
            actions=len(result.actions) if result and result.ok else None,
        )

        if result is None or not result.ok:
            await update.message.reply_text(f"❌ {controller.error or 'No reply'}")
            return

        reply = result.message or "(no message)"
        if result.actions:
            reply += "\n\n" + format_pending(controller)
        await update.message.reply_text(truncate(reply))

    # ──────────────────────────────────────────
    # Ideas
    # ──────────────────────────────────────────

    async def cmd_ideas(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        ideas = self.store.list_ideas()
        if not ideas:
            await update.message.reply_text("No ideas yet. Create one with /newidea <title>.")
            return
        selected = self.session_for(update.effective_user.id).idea_id
        lines = []
        for idea in ideas:
            marker = "▶" if idea.idea_id == selected else "•"
            lines.append(f"{marker} {idea.title} (`{idea.idea_id}`)")
        await update.message.reply_text("\n".join(lines), parse_mode="Markdown")

    async def cmd_new_idea(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        title = " ".join(context.args or []).strip()
        if not title:
            await update.message.reply_text("Usage: /newidea <title>")
            return
        idea = self.store.create_idea(title)
        self.session_for(update.effective_user.id).select(idea.idea_id)
        self.audit_event(update, "newidea", "ok", idea_id=idea.idea_id)
        await update.message.reply_text(f"✅ Created and selected {idea.title} (`{idea.idea_id}`)",
                                        parse_mode="Markdown")

    async def cmd_select(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        if not context.args:
            await update.message.reply_text("Usage: /select <idea_id>")
            return
        idea = self.store.get_idea(context.args[0])
        if idea is None:
            await update.message.reply_text(f"❌ No idea with id {context.args[0]}")
            return
        self.session_for(update.effective_user.id).select(idea.idea_id)
        await update.message.reply_text(f"▶ Working on {idea.title}")

    # ──────────────────────────────────────────
    # Proposals
    # ──────────────────────────────────────────

    async def cmd_pending(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return
        controller = self.session_for(update.effective_user.id).active()
        await update.message.reply_text(format_pending(controller))

    async def cmd_approve(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        session = self.session_for(update.effective_user.id)
        controller = session.active()
        index = parse_index(context.args)
        if index is None or not 0 <= index < len(controller.pending):
            await update.message.reply_text("Usage: /approve <n> (see /pending)")
            return

        proposal = controller.pending[index]
        approved = await controller.approve_at(index)
        self.audit_event(
            update, "approve", "applied" if approved else "failed",
            proposal_id=proposal.proposal_id,
            action=proposal.type,
            card_id=session.active_card_id,
            error=None if approved else controller.error,
        )
        if not approved:
            await update.message.reply_text(f"❌ {controller.error}")
            return

        confirmation = controller.messages[-1].content
        if session.active_card_id:
            self.store.add_comment(session.active_card_id, confirmation, author=ASSISTANT_AUTHOR)
        await update.message.reply_text(f"✅ {confirmation}")

    async def cmd_dismiss(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        controller = self.session_for(update.effective_user.id).active()
        index = parse_index(context.args)
        if index is None or not 0 <= index < len(controller.pending):
            await update.message.reply_text("Usage: /dismiss <n> (see /pending)")
            return

        proposal = controller.pending[index]
        if not controller.dismiss_at(index):
            await update.message.reply_text("⏳ That change is being applied.")
            return
        self.audit_event(update, "dismiss", "dismissed",
                         proposal_id=proposal.proposal_id, action=proposal.type)
        await update.message.reply_text(f"🗑 Dismissed: {proposal.describe()}")

    async def cmd_dismiss_all(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        count = self.session_for(update.effective_user.id).active().dismiss_all()
        self.audit_event(update, "dismiss_all", "dismissed", count=count)
        await update.message.reply_text(f"🗑 Dismissed {count} proposal(s).")

    async def cmd_reset(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return
        self.session_for(update.effective_user.id).active().reset()
        await update.message.reply_text("🔄 Conversation cleared.")

    # ──────────────────────────────────────────
    # Card threads
    # ──────────────────────────────────────────

    async def cmd_comment(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Comment on a card. A mention asks the assistant within that card's thread."""
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        session = self.session_for(update.effective_user.id)
        idea = self.store.get_idea(session.idea_id) if session.idea_id else None
        if idea is None:
            await update.message.reply_text("Select an idea first with /select <idea_id>.")
            return
        args = context.args or []
        body = " ".join(args[1:]).strip()
        if not body:
            await update.message.reply_text("Usage: /comment <card_id> <text>")
            return
        card = idea.find_card(args[0])
        if card is None:
            await update.message.reply_text(f"❌ No card {args[0]} on {idea.title}")
            return

        # Context is the thread as it stood before this comment
        comments = self.store.list_comments(card.card_id)
        user = update.effective_user
        self.store.add_comment(card.card_id, body, author=user.username or user.full_name or "")
        session.active_card_id = card.card_id

        trigger = self.app_cfg.mention_trigger
        directive = extract_directive(body, trigger) if contains_mention(body, trigger) else ""
        if not directive:
            self.audit_event(update, "comment", "ok", card_id=card.card_id)
            await update.message.reply_text(f'💬 Comment added to "{card.text}"')
            return

        controller = session.thread(card.card_id)
        if controller.is_thinking:
            await update.message.reply_text("⏳ Still working on your last message.")
            return

        invocation_ctx = build_card_context(idea, card, idea.column_title(card.column_id), comments)
        await update.effective_chat.send_action(ChatAction.TYPING)
        result = await controller.send_message(directive, invocation_ctx)
        self.audit_event(
            update, "comment", "error" if controller.error else "ok",
            idea_id=idea.idea_id,
            card_id=card.card_id,
            actions=len(result.actions) if result and result.ok else None,
        )

        if result is None or not result.ok:
            await update.message.reply_text(f"❌ {controller.error or 'No reply'}")
            return

        if result.message:
            self.store.add_comment(card.card_id, result.message, author=ASSISTANT_AUTHOR)
        reply = result.message or "(no message)"
        if result.actions:
            reply += "\n\n" + format_pending(controller)
        await update.message.reply_text(truncate(reply))

    # ──────────────────────────────────────────
    # Backend + brainstorm
    # ──────────────────────────────────────────

    async def cmd_health(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        status = await self.router.check_health()
        backend = self.router.backend.name
        if status.available:
            text = f"🟢 Assistant available via {backend} ({status.version or 'unknown version'})"
        else:
            text = f"🔴 Assistant unavailable via {backend}: {status.error}"
        await update.message.reply_text(text)

    async def cmd_brainstorm(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        session = self.session_for(update.effective_user.id)
        idea = self.store.get_idea(session.idea_id) if session.idea_id else None
        if idea is None:
            await update.message.reply_text("Select an idea first with /select <idea_id>.")
            return

        model = self.app_cfg.gemini_model
        api_key = self.app_cfg.gemini_api_key or None
        await update.effective_chat.send_action(ChatAction.TYPING)
        if context.args:
            card = idea.find_card(context.args[0])
            if card is None:
                await update.message.reply_text(f"❌ No card {context.args[0]} on {idea.title}")
                return
            text = await asyncio.to_thread(brainstorm_card, idea, card, model, api_key)
        else:
            text = await asyncio.to_thread(brainstorm_idea, idea, model, api_key)
        await update.message.reply_text(truncate(text))


def main(argv=None):
    parser = argparse.ArgumentParser(description="Idea Keeper assistant bot")
    parser.add_argument("--config", default=None, help="Path to ideakeeper.yaml")
    args = parser.parse_args(argv)

    try:
        cfg = AssistantConfig.load(args.config)
        bot = AssistantBot(cfg)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        sys.exit(1)
    bot.run()


if __name__ == "__main__":
    main()
