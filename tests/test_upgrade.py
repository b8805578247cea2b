"""Tests for the upconverter chain."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from structlog.testing import capture_logs

from threadline.convert.upgrade import UPCONVERTERS, gen2_to_current, upconvert
from threadline.errors import (
    IncompatibleContentError,
    MalformedMessageError,
    SystemMessageRoutingError,
    UnhandledRoleError,
)
from threadline.models.message import (
    FilePart,
    MessageShape,
    ReasoningPart,
    SourceUrlPart,
    StepStartPart,
    TextPart,
    ToolInvocationPart,
)
from tests.conftest import FIXED_NOW, THREAD_ID, gen2_message, tool_call, tool_result


def _protocol(ctx, message):
    return upconvert(message, MessageShape.EXTERNAL_PROTOCOL, ctx).message


class TestProtocolUpconversion:
    def test_string_content_becomes_single_text_part(self, ctx):
        msg = _protocol(ctx, {"role": "user", "content": "Hello"})
        assert msg.parts == [TextPart(text="Hello")]
        assert msg.id == "new_id"
        assert msg.role == "user"
        assert msg.thread_id == THREAD_ID
        assert msg.created_at == FIXED_NOW

    def test_explicit_id_is_kept(self, ctx):
        msg = _protocol(ctx, {"id": "abc", "role": "user", "content": "Hello"})
        assert msg.id == "abc"

    def test_tool_call_becomes_input_available(self, ctx):
        msg = _protocol(ctx, {"role": "assistant", "content": [tool_call("c1")]})
        [part] = msg.parts
        assert isinstance(part, ToolInvocationPart)
        assert part.state == "input-available"
        assert part.tool_name == "weather"
        assert part.input == {"city": "Paris"}

    def test_tool_result_becomes_output_available(self, ctx):
        msg = _protocol(ctx, {"role": "tool", "content": [tool_result("c1", output={"temp": 18})]})
        [part] = msg.parts
        assert msg.role == "assistant"
        assert part.state == "output-available"
        assert part.output == {"temp": 18}
        assert part.input == {}

    def test_missing_tool_output_becomes_empty_string(self, ctx):
        result = {"type": "tool-result", "toolCallId": "c1", "toolName": "weather"}
        msg = _protocol(ctx, {"role": "tool", "content": [result]})
        assert msg.parts[0].output == ""

    def test_binary_file_is_base64_encoded(self, ctx):
        part = {"type": "file", "data": b"hello", "mediaType": "text/plain", "filename": "a.txt"}
        msg = _protocol(ctx, {"role": "user", "content": [part]})
        assert msg.parts == [FilePart(url="aGVsbG8=", media_type="text/plain", filename="a.txt")]

    def test_string_file_passes_through(self, ctx):
        part = {"type": "file", "data": "https://example.com/a.pdf", "mediaType": "application/pdf"}
        msg = _protocol(ctx, {"role": "user", "content": [part]})
        assert msg.parts[0].url == "https://example.com/a.pdf"

    def test_image_becomes_file_part(self, ctx):
        part = {"type": "image", "image": "https://example.com/cat.png", "mediaType": "image/png"}
        msg = _protocol(ctx, {"role": "user", "content": [part]})
        assert msg.parts == [FilePart(url="https://example.com/cat.png", media_type="image/png")]

    def test_unencodable_file_is_dropped_and_logged(self, ctx):
        content = [{"type": "text", "text": "see file"}, {"type": "file", "data": 42, "mediaType": "x/y"}]
        with capture_logs() as logs:
            msg = _protocol(ctx, {"role": "user", "content": content})
        assert msg.parts == [TextPart(text="see file")]
        assert any(log["event"] == "file_part_encode_failed" for log in logs)

    def test_empty_reasoning_is_dropped(self, ctx):
        content = [{"type": "reasoning", "text": ""}, {"type": "text", "text": "answer"}]
        msg = _protocol(ctx, {"role": "assistant", "content": content})
        assert msg.parts == [TextPart(text="answer")]

    def test_unknown_part_is_dropped(self, ctx):
        content = [{"type": "hologram", "data": "?"}, {"type": "text", "text": "hi"}]
        msg = _protocol(ctx, {"role": "assistant", "content": content})
        assert msg.parts == [TextPart(text="hi")]

    def test_system_role_is_rejected(self, ctx):
        with pytest.raises(SystemMessageRoutingError):
            _protocol(ctx, {"role": "system", "content": "be nice"})

    def test_unknown_role_is_rejected(self, ctx):
        with pytest.raises(UnhandledRoleError) as exc_info:
            _protocol(ctx, {"role": "data", "content": "x"})
        assert exc_info.value.role == "data"

    def test_file_in_tool_message_is_incompatible(self, ctx):
        content = [{"type": "file", "data": "https://x/y.png", "mediaType": "image/png"}]
        with pytest.raises(IncompatibleContentError) as exc_info:
            _protocol(ctx, {"role": "tool", "content": content})
        assert exc_info.value.part_type == "file"
        assert exc_info.value.role == "tool"
        assert "'file'" in str(exc_info.value) and "'tool'" in str(exc_info.value)

    def test_tool_call_in_user_message_is_incompatible(self, ctx):
        with pytest.raises(IncompatibleContentError):
            _protocol(ctx, {"role": "user", "content": [tool_call("c1")]})


class TestStandaloneToolResults:
    def test_single_result_is_reported(self, ctx):
        result = upconvert(
            {"role": "tool", "content": [tool_result("c1")]}, MessageShape.EXTERNAL_PROTOCOL, ctx
        )
        assert result.tool_result_call_ids == ("c1",)

    def test_every_result_is_reported(self, ctx):
        content = [tool_result("c1"), tool_result("c2")]
        result = upconvert({"role": "tool", "content": content}, MessageShape.EXTERNAL_PROTOCOL, ctx)
        assert result.tool_result_call_ids == ("c1", "c2")

    def test_gen1_result_row_is_reported(self, ctx):
        gen1 = {"id": "m2", "role": "tool", "type": "tool-result", "threadId": THREAD_ID,
                "content": [{"type": "tool-result", "toolCallId": "c1", "toolName": "search", "result": 1}]}
        assert upconvert(gen1, MessageShape.GEN1, ctx).tool_result_call_ids == ("c1",)

    def test_ui_message_is_never_reported(self, ctx):
        part = {"type": "tool-weather", "toolCallId": "c1", "state": "output-available", "output": "x"}
        result = upconvert({"id": "u1", "role": "assistant", "parts": [part]}, MessageShape.EXTERNAL_UI, ctx)
        assert result.tool_result_call_ids == ()


class TestGen1Upconversion:
    def test_routes_through_gen2(self, ctx, monkeypatch):
        """The oldest generation is lifted one version pair at a time."""
        seen: list[dict] = []
        key = (MessageShape.GEN2, MessageShape.CURRENT)

        def spy(message, context):
            seen.append(message)
            return gen2_to_current(message, context)

        monkeypatch.setitem(UPCONVERTERS, key, spy)
        gen1 = {"id": "m1", "role": "user", "content": "hi", "type": "text", "threadId": THREAD_ID,
                "createdAt": "2024-01-01T00:00:00Z"}
        upconvert(gen1, MessageShape.GEN1, ctx)
        assert len(seen) == 1
        assert seen[0]["content"]["format"] == 2

    def test_tool_call_keeps_args(self, ctx):
        gen1 = {
            "id": "m1",
            "role": "assistant",
            "type": "tool-call",
            "threadId": THREAD_ID,
            "createdAt": "2024-01-01T00:00:00Z",
            "content": [{"type": "tool-call", "toolCallId": "c1", "toolName": "search", "args": {"q": "x"}}],
        }
        msg = upconvert(gen1, MessageShape.GEN1, ctx).message
        assert msg.id == "m1"
        assert msg.created_at == datetime(2024, 1, 1, tzinfo=UTC)
        [part] = msg.parts
        assert part.tool_name == "search"
        assert part.state == "input-available"
        assert part.input == {"q": "x"}

    def test_tool_role_becomes_assistant_with_result(self, ctx):
        gen1 = {
            "id": "m2",
            "role": "tool",
            "type": "tool-result",
            "threadId": THREAD_ID,
            "content": [{"type": "tool-result", "toolCallId": "c1", "toolName": "search", "result": [1, 2]}],
        }
        msg = upconvert(gen1, MessageShape.GEN1, ctx).message
        assert msg.role == "assistant"
        assert msg.parts[0].state == "output-available"
        assert msg.parts[0].output == [1, 2]

    def test_reasoning_survives_and_redacted_is_dropped(self, ctx):
        gen1 = {
            "id": "m3",
            "role": "assistant",
            "threadId": THREAD_ID,
            "content": [
                {"type": "reasoning", "text": "thinking", "signature": "sig"},
                {"type": "redacted-reasoning", "data": "xxx"},
                {"type": "text", "text": "done"},
            ],
        }
        msg = upconvert(gen1, MessageShape.GEN1, ctx).message
        assert msg.parts == [ReasoningPart(text="thinking"), TextPart(text="done")]

    def test_system_gen1_is_rejected(self, ctx):
        gen1 = {"id": "s", "role": "system", "content": "x", "threadId": THREAD_ID}
        with pytest.raises(SystemMessageRoutingError):
            upconvert(gen1, MessageShape.GEN1, ctx)


class TestGen2Upconversion:
    def test_missing_thread_is_stamped_and_own_thread_kept(self, ctx):
        bare = gen2_message("m1", "user", [{"type": "text", "text": "hi"}])
        del bare["threadId"]
        own = gen2_message("m2", "user", [{"type": "text", "text": "hi"}], thread_id="elsewhere")
        assert upconvert(bare, MessageShape.GEN2, ctx).message.thread_id == THREAD_ID
        assert upconvert(own, MessageShape.GEN2, ctx).message.thread_id == "elsewhere"

    def test_tool_invocation_states(self, ctx):
        parts = [
            {"type": "tool-invocation",
             "toolInvocation": {"state": "partial-call", "toolCallId": "a", "toolName": "t", "args": {}}},
            {"type": "tool-invocation",
             "toolInvocation": {"state": "call", "toolCallId": "b", "toolName": "t", "args": {"x": 1}}},
            {"type": "tool-invocation",
             "toolInvocation": {"state": "result", "toolCallId": "c", "toolName": "t", "args": {},
                                "result": "ok"}},
        ]
        msg = upconvert(gen2_message("m1", "assistant", parts), MessageShape.GEN2, ctx).message
        assert [p.state for p in msg.parts] == ["input-streaming", "input-available", "output-available"]
        assert msg.parts[2].output == "ok"

    def test_source_reasoning_and_step_start(self, ctx):
        parts = [
            {"type": "step-start"},
            {"type": "reasoning", "reasoning": "", "details": [{"type": "text", "text": "hmm"}]},
            {"type": "source", "source": {"id": "s1", "url": "https://a.b", "title": "AB", "sourceType": "url"}},
        ]
        msg = upconvert(gen2_message("m1", "assistant", parts), MessageShape.GEN2, ctx).message
        assert msg.parts == [
            StepStartPart(),
            ReasoningPart(text="hmm"),
            SourceUrlPart(source_id="s1", url="https://a.b", title="AB"),
        ]

    def test_reasoning_without_text_is_dropped(self, ctx):
        parts = [{"type": "reasoning", "reasoning": "", "details": [{"type": "redacted", "data": "x"}]}]
        msg = upconvert(gen2_message("m1", "assistant", parts), MessageShape.GEN2, ctx).message
        assert msg.parts == []

    def test_attachments_become_files_without_duplicates(self, ctx):
        parts = [{"type": "file", "data": "https://x/a.png", "mimeType": "image/png"}]
        attachments = [
            {"url": "https://x/a.png", "contentType": "image/png"},
            {"url": "https://x/b.pdf", "contentType": "application/pdf", "name": "b.pdf"},
            {"url": "https://x/c"},
        ]
        msg = upconvert(
            gen2_message("m1", "user", parts, experimental_attachments=attachments),
            MessageShape.GEN2,
            ctx,
        ).message
        assert [p.url for p in msg.parts] == ["https://x/a.png", "https://x/b.pdf", "https://x/c"]
        assert msg.parts[1].filename == "b.pdf"
        assert msg.parts[2].media_type == "unknown"

    def test_keeps_own_thread(self, ctx):
        msg = upconvert(gen2_message("m1", "user", [], thread_id="other"), MessageShape.GEN2, ctx).message
        assert msg.thread_id == "other"


class TestUIUpconversion:
    def test_tool_prefixed_part_is_normalized(self, ctx):
        part = {"type": "tool-weather", "toolCallId": "c1", "state": "input-available", "input": {"city": "Oslo"}}
        msg = upconvert({"id": "u1", "role": "assistant", "parts": [part]}, MessageShape.EXTERNAL_UI, ctx).message
        [tool] = msg.parts
        assert isinstance(tool, ToolInvocationPart)
        assert tool.tool_name == "weather"
        assert tool.input == {"city": "Oslo"}

    def test_metadata_created_at_is_supplied_time(self, ctx):
        msg = upconvert(
            {"id": "u1", "role": "user", "parts": [{"type": "text", "text": "hi"}],
             "metadata": {"createdAt": "2024-03-03T03:03:03Z", "lang": "en"}},
            MessageShape.EXTERNAL_UI,
            ctx,
        ).message
        assert msg.created_at == datetime(2024, 3, 3, 3, 3, 3, tzinfo=UTC)
        assert msg.content.metadata == {"lang": "en"}

    def test_unparseable_created_at_is_malformed(self, ctx):
        with pytest.raises(MalformedMessageError, match="not-a-date"):
            upconvert(
                {"id": "u1", "role": "user", "parts": [{"type": "text", "text": "hi"}],
                 "metadata": {"createdAt": "not-a-date"}},
                MessageShape.EXTERNAL_UI,
                ctx,
            )

    def test_unknown_parts_dropped_with_warning(self, ctx):
        with capture_logs() as logs:
            msg = upconvert(
                {"id": "u1", "role": "assistant",
                 "parts": [{"type": "data-chart", "data": {}}, {"type": "text", "text": "ok"}]},
                MessageShape.EXTERNAL_UI,
                ctx,
            ).message
        assert msg.parts == [TextPart(text="ok")]
        [log] = [entry for entry in logs if entry["event"] == "unknown_part_dropped"]
        assert log["log_level"] == "warning"
        assert log["part_type"] == "data-chart"

    def test_drop_logged_at_debug_when_warnings_disabled(self, ctx):
        ctx.warn_on_drop = False
        with capture_logs() as logs:
            upconvert(
                {"id": "u1", "role": "assistant", "parts": [{"type": "data-chart"}]},
                MessageShape.EXTERNAL_UI,
                ctx,
            )
        [log] = [entry for entry in logs if entry["event"] == "unknown_part_dropped"]
        assert log["log_level"] == "debug"

    def test_attachments_become_files(self, ctx):
        msg = upconvert(
            {"id": "u1", "role": "user", "parts": [],
             "experimental_attachments": [{"url": "https://x/a.png", "contentType": "image/png"}]},
            MessageShape.EXTERNAL_UI,
            ctx,
        ).message
        assert msg.parts == [FilePart(url="https://x/a.png", media_type="image/png")]


class TestCurrentUpconversion:
    def test_tool_prefixed_parts_accepted(self, ctx):
        current = {
            "id": "m1",
            "role": "assistant",
            "createdAt": "2024-01-01T00:00:00Z",
            "content": {"format": 3, "parts": [
                {"type": "tool-search", "toolCallId": "c1", "state": "output-available",
                 "input": {"q": 1}, "output": "r"},
            ]},
        }
        msg = upconvert(current, MessageShape.CURRENT, ctx).message
        assert msg.parts[0].tool_name == "search"
        assert msg.thread_id == THREAD_ID

    def test_naive_created_at_is_utc(self, ctx):
        current = {"id": "m1", "role": "user", "createdAt": datetime(2024, 1, 1),
                   "content": {"format": 3, "parts": []}}
        msg = upconvert(current, MessageShape.CURRENT, ctx).message
        assert msg.created_at.tzinfo is not None
