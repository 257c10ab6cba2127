"""
Tests for Command Framer

"hey neuro <command> over" framing, cleaning and keyword classification.
"""

import pytest


@pytest.fixture
def framer():
    from neurocue.common.config import AutomationConfig
    from neurocue.capture.framer import CommandFramer

    return CommandFramer.from_config(AutomationConfig())


@pytest.fixture
def buffer():
    from neurocue.capture.framer import CommandBuffer

    return CommandBuffer("conv-1")


class TestCommandBuffer:
    """Tests for CommandBuffer"""

    def test_starts_empty(self, buffer):
        assert buffer.is_accumulating is False

    def test_clear(self, buffer):
        buffer.raw_text = "hey neuro"
        assert buffer.is_accumulating is True
        buffer.clear()
        assert buffer.raw_text is None


class TestFeed:
    """Tests for CommandFramer.feed"""

    def test_command_across_two_deltas(self, framer, buffer):
        assert framer.feed(buffer, "hey neuro schedule a meeting") is None
        assert buffer.is_accumulating

        command = framer.feed(buffer, " for friday at 3pm over")

        assert command is not None
        assert command.cleaned == "schedule a meeting for friday at 3pm"
        assert command.intent_kind == "schedule_meeting"
        assert command.conversation_id == "conv-1"
        assert not buffer.is_accumulating

    def test_command_in_one_delta(self, framer, buffer):
        command = framer.feed(buffer, "so hey neuro, please send an email to Dana, over. ok")

        assert command.cleaned == "send an email to Dana"
        assert command.intent_kind == "send_email"

    def test_text_before_wake_ignored(self, framer, buffer):
        assert framer.feed(buffer, "we are going over the budget") is None
        assert not buffer.is_accumulating

    def test_wake_variants(self, framer):
        from neurocue.capture.framer import CommandBuffer

        for text in ["Hey Neuro remind me over", "hey, neuro remind me over", "HEY-NEURO! remind me over"]:
            command = framer.feed(CommandBuffer("c"), text)
            assert command is not None, text
            assert command.intent_kind == "create_reminder"

    def test_end_marker_must_be_whole_word(self, framer, buffer):
        assert framer.feed(buffer, "hey neuro create a task for the overview") is None
        command = framer.feed(buffer, " over")

        assert command.cleaned == "create a task for the overview"
        assert command.intent_kind == "create_task"

    def test_no_intent_keyword(self, framer, buffer):
        command = framer.feed(buffer, "hey neuro what is the weather over")

        assert command is not None
        assert command.intent_kind is None
        assert command.has_intent is False

    def test_empty_delta(self, framer, buffer):
        assert framer.feed(buffer, "") is None
        assert not buffer.is_accumulating

    def test_buffer_resets_for_next_command(self, framer, buffer):
        framer.feed(buffer, "hey neuro remind me over")
        command = framer.feed(buffer, " hey neuro email the team over")

        assert command.intent_kind == "send_email"

    def test_new_wake_restarts_open_block(self, framer, buffer):
        """A chart start also says the wake marker; the next command must not inherit it"""
        assert framer.feed(buffer, "hey neuro create a chart of meetings per team alpha 3 beta 5 end chart") is None
        assert buffer.is_accumulating

        command = framer.feed(buffer, " hey neuro send an email to bob over")

        assert command.cleaned == "send an email to bob"
        assert command.intent_kind == "send_email"

    def test_last_wake_before_end_marker_wins(self, framer, buffer):
        command = framer.feed(buffer, "hey neuro um never mind. hey neuro email bob the notes over")

        assert command.cleaned == "email bob the notes"
        assert command.intent_kind == "send_email"

    def test_restart_keeps_only_latest_block(self, framer, buffer):
        framer.feed(buffer, "hey neuro schedule")
        framer.feed(buffer, " hmm hey neuro remind me")

        assert buffer.raw_text == "hey neuro remind me"

    def test_custom_tokens(self, buffer):
        from neurocue.capture.framer import CommandFramer

        framer = CommandFramer(
            wake_token="ok",
            assistant_token="cue",
            end_marker="done",
            intent_keywords={"create_task": ["task"]},
        )
        command = framer.feed(buffer, "ok cue add a task done")
        assert command.cleaned == "add a task"
        assert command.intent_kind == "create_task"


class TestClean:
    """Tests for CommandFramer.clean"""

    def test_strips_fillers(self, framer):
        assert framer.clean("um please schedule uh a meeting thank you") == "schedule a meeting"

    def test_filler_inside_word_kept(self, framer):
        assert framer.clean("summer offer") == "summer offer"

    def test_strips_punctuation_keeps_joiners(self, framer):
        assert framer.clean("at 3:30, send e-mail!") == "at 3:30 send e-mail"

    def test_collapses_whitespace(self, framer):
        assert framer.clean("  a   b \n c ") == "a b c"


class TestClassify:
    """Tests for CommandFramer.classify"""

    def test_earliest_keyword_wins(self, framer):
        assert framer.classify("email everyone about the meeting") == "send_email"
        assert framer.classify("schedule a meeting to discuss the email") == "schedule_meeting"

    def test_none_without_keyword(self, framer):
        assert framer.classify("what time is it") is None

    def test_tie_goes_to_first_intent(self):
        from neurocue.capture.framer import CommandFramer

        framer = CommandFramer(intent_keywords={
            "first": ["book"],
            "second": ["book"],
        })
        assert framer.classify("book it") == "first"


class TestCommandLimits:
    """Tests for command buffer eviction"""

    def test_evicts_past_char_limit(self, buffer, caplog):
        import logging
        from neurocue.capture.framer import CommandFramer

        framer = CommandFramer(max_command_chars=30, intent_keywords={"schedule_meeting": ["meeting"]})

        with caplog.at_level(logging.WARNING, logger="neurocue.capture.framer"):
            assert framer.feed(buffer, "hey neuro schedule a meeting with") is None

        assert not buffer.is_accumulating
        assert "Evicting command buffer" in caplog.text
        # The end marker alone no longer frames anything
        assert framer.feed(buffer, " everyone over") is None

    def test_evicts_past_age_limit(self, buffer, caplog):
        import logging
        from neurocue.capture.framer import CommandFramer

        now = [0.0]
        framer = CommandFramer(
            max_command_seconds=60,
            intent_keywords={"create_task": ["task"]},
            clock=lambda: now[0],
        )
        framer.feed(buffer, "hey neuro add a task")
        assert buffer.opened_at == 0.0

        now[0] = 61.0
        with caplog.at_level(logging.WARNING, logger="neurocue.capture.framer"):
            assert framer.feed(buffer, " over") is None

        assert not buffer.is_accumulating
        assert "Evicting command buffer" in caplog.text

        command = framer.feed(buffer, " hey neuro add a task over")
        assert command.intent_kind == "create_task"

    def test_restart_resets_age(self, buffer):
        from neurocue.capture.framer import CommandFramer

        now = [0.0]
        framer = CommandFramer(
            max_command_seconds=60,
            intent_keywords={"create_task": ["task"]},
            clock=lambda: now[0],
        )
        framer.feed(buffer, "hey neuro never mind")
        now[0] = 50.0
        framer.feed(buffer, " hey neuro add a task")
        now[0] = 100.0

        command = framer.feed(buffer, " for ben over")
        assert command.cleaned == "add a task for ben"

    def test_limits_from_config(self):
        from neurocue.common.config import AutomationConfig
        from neurocue.capture.framer import CommandBuffer, CommandFramer

        framer = CommandFramer.from_config(AutomationConfig(max_command_chars=20))
        buffer = CommandBuffer("c")
        framer.feed(buffer, "hey neuro " + "blah " * 10)

        assert not buffer.is_accumulating

    def test_clear_resets_opened_at(self, framer, buffer):
        framer.feed(buffer, "hey neuro schedule")
        assert buffer.opened_at is not None

        buffer.clear()
        assert buffer.opened_at is None
