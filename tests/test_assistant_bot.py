"""
Tests for the assistant Telegram bot handlers.

Covers:
    - authorization           — rejection is audited
    - handle_message()        — private chats, group mention gating, replies with proposals
    - /newidea, /select, /ideas
    - /approve, /dismiss, /dismiss_all, /pending
    - /health, /brainstorm
    - /comment                — card threads: stored comments, card context, thread approvals
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from assistant_bot import AssistantBot, parse_index
from ideakeeper.assistant.actions import parse_actions
from ideakeeper.assistant.router import AssistantRouter
from ideakeeper.assistant.schema import (
    CreateCardProposal,
    HealthStatus,
    InvocationErrorKind,
    InvocationResult,
    MentionType,
)
from ideakeeper.config import AssistantConfig

USER_ID = 42


def make_update(text="", user_id=USER_ID, chat_type="private"):
    update = MagicMock()
    update.effective_user.id = user_id
    update.effective_user.username = "ana"
    update.effective_user.full_name = "Ana"
    update.effective_chat.type = chat_type
    update.effective_chat.send_action = AsyncMock()
    update.message.text = text
    update.message.reply_text = AsyncMock()
    return update


def make_context(*args):
    context = MagicMock()
    context.args = list(args)
    return context


def replied(update) -> str:
    return update.message.reply_text.call_args.args[0]


@pytest.fixture
def bot(tmp_path, store, fake_backend):
    cfg = AssistantConfig(
        db_path=str(tmp_path / "board.db"),
        audit_log=str(tmp_path / "audit.jsonl"),
        bots={"assistant_bot": {"token_env": "TOK", "allowed_users": [USER_ID]}},
    )
    return AssistantBot(cfg, router=AssistantRouter(fake_backend), store=store, environ={"TOK": "abc"})


def audit_entries(bot):
    return [json.loads(line) for line in bot.cfg.audit_log.read_text().splitlines() if line]


class TestParseIndex:

    def test_one_based(self):
        assert parse_index(["1"]) == 0
        assert parse_index(["3"]) == 2

    def test_invalid(self):
        assert parse_index([]) is None
        assert parse_index(["two"]) is None


class TestAuthorization:

    def test_rejected_and_audited(self, bot, fake_backend):
        update = make_update("hello", user_id=999)
        asyncio.run(bot.handle_message(update, make_context()))
        assert "Unauthorized" in replied(update)
        fake_backend.invoke.assert_not_called()
        assert audit_entries(bot)[-1]["command"] == "UNAUTHORIZED"

    def test_commands_rejected(self, bot):
        update = make_update("/pending", user_id=999)
        asyncio.run(bot.cmd_pending(update, make_context()))
        assert "Unauthorized" in replied(update)


class TestHandleMessage:

    def test_private_message_goes_to_assistant(self, bot, fake_backend):
        update = make_update("what should I do next?")
        asyncio.run(bot.handle_message(update, make_context()))
        assert fake_backend.invoke.call_args.args[0] == "what should I do next?"
        assert replied(update) == "ok"

    def test_mention_is_stripped(self, bot, fake_backend):
        update = make_update("@claude list my cards")
        asyncio.run(bot.handle_message(update, make_context()))
        assert fake_backend.invoke.call_args.args[0] == "list my cards"

    def test_group_without_mention_ignored(self, bot, fake_backend):
        update = make_update("lunch?", chat_type="group")
        asyncio.run(bot.handle_message(update, make_context()))
        fake_backend.invoke.assert_not_called()
        update.message.reply_text.assert_not_called()

    def test_group_with_mention(self, bot, fake_backend):
        update = make_update("hey @Claude summarize", chat_type="supergroup")
        asyncio.run(bot.handle_message(update, make_context()))
        assert fake_backend.invoke.call_args.args[0] == "hey summarize"

    def test_selected_idea_in_context(self, bot, store, fake_backend):
        idea = store.create_idea("Launch", "Ship it")
        bot.session_for(USER_ID).select(idea.idea_id)
        asyncio.run(bot.handle_message(make_update("status?"), make_context()))
        ctx = fake_backend.invoke.call_args.args[1]
        assert ctx.idea_title == "Launch"

    def test_reply_lists_proposals(self, bot, fake_backend):
        fake_backend.invoke = AsyncMock(return_value=InvocationResult(
            message="Sure", actions=[CreateCardProposal(text="Onboarding", column_id="doing")]))
        update = make_update("@claude add onboarding")
        asyncio.run(bot.handle_message(update, make_context()))
        text = replied(update)
        assert text.startswith("Sure")
        assert '1. Create card: "Onboarding" in doing' in text
        assert audit_entries(bot)[-1]["actions"] == 1

    def test_error_reply(self, bot, fake_backend):
        fake_backend.invoke = AsyncMock(return_value=InvocationResult.failure(
            "Claude CLI not found", InvocationErrorKind.NOT_INSTALLED))
        update = make_update("hi")
        asyncio.run(bot.handle_message(update, make_context()))
        assert "Claude CLI not found" in replied(update)
        assert audit_entries(bot)[-1]["status"] == "error"

    def test_busy(self, bot, fake_backend):
        bot.session_for(USER_ID).controller.is_thinking = True
        update = make_update("hi")
        asyncio.run(bot.handle_message(update, make_context()))
        fake_backend.invoke.assert_not_called()
        assert "Still working" in replied(update)


class TestIdeaCommands:

    def test_newidea_selects(self, bot, store):
        update = make_update()
        asyncio.run(bot.cmd_new_idea(update, make_context("Launch", "v2")))
        ideas = store.list_ideas()
        assert ideas[0].title == "Launch v2"
        assert bot.session_for(USER_ID).idea_id == ideas[0].idea_id
        assert bot.session_for(USER_ID).applier.idea_id == ideas[0].idea_id

    def test_newidea_usage(self, bot):
        update = make_update()
        asyncio.run(bot.cmd_new_idea(update, make_context()))
        assert "Usage" in replied(update)

    def test_select(self, bot, store):
        idea = store.create_idea("Launch")
        update = make_update()
        asyncio.run(bot.cmd_select(update, make_context(idea.idea_id)))
        assert bot.session_for(USER_ID).applier.idea_id == idea.idea_id
        assert "Launch" in replied(update)

    def test_select_unknown(self, bot):
        update = make_update()
        asyncio.run(bot.cmd_select(update, make_context("ghost")))
        assert "No idea" in replied(update)

    def test_ideas_marks_selection(self, bot, store):
        idea = store.create_idea("Launch")
        store.create_idea("Blog")
        bot.session_for(USER_ID).select(idea.idea_id)
        update = make_update()
        asyncio.run(bot.cmd_ideas(update, make_context()))
        assert "▶ Launch" in replied(update)
        assert "• Blog" in replied(update)


class TestProposalCommands:

    def setup_session(self, bot, store):
        idea = store.create_idea("Launch")
        session = bot.session_for(USER_ID)
        session.select(idea.idea_id)
        session.controller.pending = [
            CreateCardProposal(text="A", column_id="todo"),
            CreateCardProposal(text="B", column_id="doing"),
        ]
        return idea, session

    def test_approve(self, bot, store):
        idea, session = self.setup_session(bot, store)
        update = make_update()
        asyncio.run(bot.cmd_approve(update, make_context("2")))
        assert [p.text for p in session.controller.pending] == ["A"]
        assert replied(update) == '✅ Created card: "B" in doing'
        assert store.get_idea(idea.idea_id).columns[1].cards[0].text == "B"
        entry = audit_entries(bot)[-1]
        assert entry["command"] == "approve"
        assert entry["status"] == "applied"

    def test_approve_bad_index(self, bot, store):
        self.setup_session(bot, store)
        update = make_update()
        asyncio.run(bot.cmd_approve(update, make_context("9")))
        assert "Usage" in replied(update)

    def test_approve_failure(self, bot, store):
        _, session = self.setup_session(bot, store)
        session.select("deleted-idea")
        update = make_update()
        asyncio.run(bot.cmd_approve(update, make_context("1")))
        assert replied(update).startswith("❌")
        assert len(session.controller.pending) == 2
        assert audit_entries(bot)[-1]["status"] == "failed"

    def test_dismiss(self, bot, store):
        idea, session = self.setup_session(bot, store)
        update = make_update()
        asyncio.run(bot.cmd_dismiss(update, make_context("1")))
        assert [p.text for p in session.controller.pending] == ["B"]
        assert all(not col.cards for col in store.get_idea(idea.idea_id).columns)
        assert audit_entries(bot)[-1]["command"] == "dismiss"

    def test_dismiss_all(self, bot, store):
        _, session = self.setup_session(bot, store)
        update = make_update()
        asyncio.run(bot.cmd_dismiss_all(update, make_context()))
        assert session.controller.pending == []
        assert "2" in replied(update)

    def test_pending(self, bot, store):
        self.setup_session(bot, store)
        update = make_update()
        asyncio.run(bot.cmd_pending(update, make_context()))
        assert '2. Create card: "B" in doing' in replied(update)

    def test_pending_empty(self, bot):
        update = make_update()
        asyncio.run(bot.cmd_pending(update, make_context()))
        assert "No pending" in replied(update)


class TestBackendCommands:

    def test_health(self, bot):
        update = make_update()
        asyncio.run(bot.cmd_health(update, make_context()))
        assert "available via fake" in replied(update)

    def test_health_down(self, bot, fake_backend):
        fake_backend.check_health = AsyncMock(return_value=HealthStatus(available=False, error="gone"))
        update = make_update()
        asyncio.run(bot.cmd_health(update, make_context()))
        assert "unavailable" in replied(update)
        assert "gone" in replied(update)

    def test_brainstorm_requires_selection(self, bot):
        update = make_update()
        asyncio.run(bot.cmd_brainstorm(update, make_context()))
        assert "Select an idea" in replied(update)

    def test_brainstorm_idea(self, bot, store):
        idea = store.create_idea("Launch")
        bot.session_for(USER_ID).select(idea.idea_id)
        update = make_update()
        with patch("assistant_bot.brainstorm_idea", return_value="### Next Steps") as brainstorm:
            asyncio.run(bot.cmd_brainstorm(update, make_context()))
        assert brainstorm.call_args.args[0].idea_id == idea.idea_id
        assert replied(update) == "### Next Steps"

    def test_brainstorm_card(self, bot, store):
        idea = store.create_idea("Launch")
        card = store.add_card(idea.idea_id, "todo", "Write spec")
        bot.session_for(USER_ID).select(idea.idea_id)
        update = make_update()
        with patch("assistant_bot.brainstorm_card", return_value="### Sub-tasks") as brainstorm:
            asyncio.run(bot.cmd_brainstorm(update, make_context(card.card_id)))
        assert brainstorm.call_args.args[1].card_id == card.card_id
        assert replied(update) == "### Sub-tasks"


MOVE_TO_DONE = 'Moving it\n```actions\n[{"type": "move_card", "params": {"columnId": "done"}}]\n```'


class TestCardThreads:

    def setup_thread(self, bot, store):
        idea = store.create_idea("Launch", "Ship the app")
        card = store.add_card(idea.idea_id, "doing", "Build MVP")
        bot.session_for(USER_ID).select(idea.idea_id)
        return idea, card

    def thread_reply(self, fake_backend, raw):
        async def invoke(prompt, ctx):
            parsed = parse_actions(raw, ctx.card_id)
            return InvocationResult(message=parsed.message, actions=parsed.actions)

        fake_backend.invoke = AsyncMock(side_effect=invoke)

    def test_plain_comment_is_stored(self, bot, store, fake_backend):
        _, card = self.setup_thread(bot, store)
        update = make_update()
        asyncio.run(bot.cmd_comment(update, make_context(card.card_id, "looks", "good")))
        comments = store.list_comments(card.card_id)
        assert [(c.author, c.body) for c in comments] == [("ana", "looks good")]
        fake_backend.invoke.assert_not_called()
        assert "Comment added" in replied(update)

    def test_mention_asks_about_the_card(self, bot, store, fake_backend):
        _, card = self.setup_thread(bot, store)
        store.add_comment(card.card_id, "blocked on API", author="sam")
        update = make_update()
        asyncio.run(bot.cmd_comment(update, make_context(card.card_id, "@claude", "what", "next?")))

        prompt, ctx = fake_backend.invoke.call_args.args
        assert prompt == "what next?"
        assert ctx.mention_type is MentionType.CARD
        assert ctx.card_id == card.card_id
        assert ctx.card_text == "Build MVP"
        assert ctx.column_title == "In Progress"
        assert ctx.recent_comments == "sam: blocked on API"

        comments = store.list_comments(card.card_id)
        assert [c.body for c in comments] == ["blocked on API", "@claude what next?", "ok"]
        assert comments[-1].author == "Claude"
        assert replied(update) == "ok"
        assert audit_entries(bot)[-1]["card_id"] == card.card_id

    def test_approve_in_thread_moves_that_card(self, bot, store, fake_backend):
        _, card = self.setup_thread(bot, store)
        self.thread_reply(fake_backend, MOVE_TO_DONE)
        update = make_update()
        asyncio.run(bot.cmd_comment(update, make_context(card.card_id, "@claude", "ship", "it")))
        assert f"1. Move card {card.card_id} to done" in replied(update)

        update = make_update()
        asyncio.run(bot.cmd_approve(update, make_context("1")))
        assert replied(update) == "✅ Moved card to done"
        assert store.get_card(card.card_id).column_id == "done"
        last = store.list_comments(card.card_id)[-1]
        assert (last.author, last.body) == ("Claude", "Moved card to done")
        assert bot.session_for(USER_ID).thread(card.card_id).pending == []

    def test_thread_queue_separate_from_chat(self, bot, store, fake_backend):
        _, card = self.setup_thread(bot, store)
        session = bot.session_for(USER_ID)
        session.controller.pending = [CreateCardProposal(text="From chat")]
        self.thread_reply(fake_backend, MOVE_TO_DONE)
        asyncio.run(bot.cmd_comment(make_update(), make_context(card.card_id, "@claude", "done?")))

        update = make_update()
        asyncio.run(bot.cmd_pending(update, make_context()))
        assert "Move card" in replied(update)
        assert "From chat" not in replied(update)

        asyncio.run(bot.handle_message(make_update("and the rest?"), make_context()))
        assert session.active_card_id is None
        update = make_update()
        asyncio.run(bot.cmd_pending(update, make_context()))
        assert "From chat" in replied(update)
        assert "Move card" not in replied(update)

    def test_dismiss_in_thread(self, bot, store, fake_backend):
        _, card = self.setup_thread(bot, store)
        self.thread_reply(fake_backend, MOVE_TO_DONE)
        asyncio.run(bot.cmd_comment(make_update(), make_context(card.card_id, "@claude", "done?")))
        update = make_update()
        asyncio.run(bot.cmd_dismiss(update, make_context("1")))
        assert "Dismissed" in replied(update)
        assert store.get_card(card.card_id).column_id == "doing"

    def test_error_reply_not_stored(self, bot, store, fake_backend):
        _, card = self.setup_thread(bot, store)
        fake_backend.invoke = AsyncMock(return_value=InvocationResult.failure(
            "Claude CLI timeout after 120 seconds", InvocationErrorKind.TIMEOUT))
        update = make_update()
        asyncio.run(bot.cmd_comment(update, make_context(card.card_id, "@claude", "hi")))
        assert "timeout" in replied(update)
        assert [c.author for c in store.list_comments(card.card_id)] == ["ana"]

    def test_requires_selection(self, bot, fake_backend):
        update = make_update()
        asyncio.run(bot.cmd_comment(update, make_context("c1", "hi")))
        assert "Select an idea" in replied(update)

    def test_usage(self, bot, store):
        _, card = self.setup_thread(bot, store)
        update = make_update()
        asyncio.run(bot.cmd_comment(update, make_context(card.card_id)))
        assert "Usage" in replied(update)

    def test_card_on_other_idea(self, bot, store):
        other = store.create_idea("Blog")
        foreign = store.add_card(other.idea_id, "todo", "Draft post")
        self.setup_thread(bot, store)
        update = make_update()
        asyncio.run(bot.cmd_comment(update, make_context(foreign.card_id, "hi")))
        assert "No card" in replied(update)
        assert store.list_comments(foreign.card_id) == []

    def test_select_drops_threads(self, bot, store):
        _, card = self.setup_thread(bot, store)
        asyncio.run(bot.cmd_comment(make_update(), make_context(card.card_id, "note")))
        session = bot.session_for(USER_ID)
        assert session.active_card_id == card.card_id
        session.select(store.create_idea("Blog").idea_id)
        assert session.active_card_id is None
        assert session.threads == {}
