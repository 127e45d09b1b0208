"""Tests for HandlerRegistry."""

import pytest

from jobspine.scheduling.registry import HandlerRegistry


async def send_email(job):
    """Send one email."""


class TestHandlerRegistry:
    def test_register_and_get(self):
        registry = HandlerRegistry()
        registry.register("send_email", send_email)

        assert registry.get("send_email") is send_email
        assert registry.has("send_email")
        assert "send_email" in registry
        assert len(registry) == 1

    def test_get_unknown_returns_none(self):
        assert HandlerRegistry().get("nope") is None

    def test_re_register_overwrites(self):
        registry = HandlerRegistry()
        registry.register("job", send_email)

        def replacement(job):
            return None

        registry.register("job", replacement)

        assert registry.get("job") is replacement
        assert len(registry) == 1

    def test_rejects_non_callable(self):
        with pytest.raises(TypeError, match="not callable"):
            HandlerRegistry().register("job", "not a function")

    def test_decorator(self):
        registry = HandlerRegistry()

        @registry.handler("cleanup", description="Delete old rows")
        def cleanup(job):
            return None

        assert registry.get("cleanup") is cleanup
        assert registry.list_handlers() == [{"name": "cleanup", "description": "Delete old rows"}]

    def test_description_defaults_to_docstring(self):
        registry = HandlerRegistry()
        registry.register("send_email", send_email)
        registry.register("anon", lambda job: None)

        assert registry.list_handlers() == [
            {"name": "anon", "description": None},
            {"name": "send_email", "description": "Send one email."},
        ]

    def test_unregister_and_clear(self):
        registry = HandlerRegistry()
        registry.register("a", send_email)
        registry.register("b", send_email)

        assert registry.unregister("a") is True
        assert registry.unregister("a") is False
        registry.clear()
        assert len(registry) == 0
        assert registry.list_handlers() == []
