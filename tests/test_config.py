"""Tests for MessageListConfig."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

import threadline
from threadline import MessageList
from threadline.models.config import MessageListConfig


class TestMessageListConfig:
    def test_defaults(self) -> None:
        cfg = MessageListConfig.default()
        assert cfg.thread_id is None
        assert cfg.resource_id is None
        assert cfg.id_prefix == "msg"
        assert cfg.warn_on_dropped_parts is True

    def test_resource_requires_thread(self) -> None:
        with pytest.raises(ValidationError, match="resource_id requires thread_id"):
            MessageListConfig(resource_id="user_1")

    def test_empty_prefix_rejected(self) -> None:
        with pytest.raises(ValidationError):
            MessageListConfig(id_prefix="")

    def test_keyword_shortcut_builds_config(self) -> None:
        messages = MessageList(thread_id="t1", resource_id="r1")
        assert messages.config.thread_id == "t1"
        assert messages.config.resource_id == "r1"

    def test_explicit_config_wins(self) -> None:
        cfg = MessageListConfig(thread_id="t1")
        assert MessageList(cfg).config is cfg


def test_version_exported() -> None:
    assert threadline.__version__ == "0.1.0"
