"""
Unit tests for post-commit hooks.
"""

from onboardflow.app.core.side_effects import PostCommitHooks


class TestPostCommitHooks:
    """Test suite for best-effort hook execution."""

    async def test_failure_does_not_stop_later_hooks(self):
        """Test that a failing hook yields None and the next hook still runs."""
        calls = []

        async def good(name):
            calls.append(name)
            return name

        async def bad():
            raise RuntimeError("boom")

        hooks = PostCommitHooks("test")
        hooks.add("first", lambda: good("first")).add("broken", bad).add("last", lambda: good("last"))

        results = await hooks.run()

        assert results == ["first", None, "last"]
        assert calls == ["first", "last"]
        assert len(hooks) == 3

    async def test_no_hooks(self):
        """Test that running nothing returns nothing."""
        assert await PostCommitHooks("empty").run() == []
