"""
Post-commit side effects.

Audit entries and notifications are secondary to the write that caused
them: they run after the primary mutation succeeded, each on its own, and a
failing hook is logged and never surfaces to the caller.
"""

from typing import Any, Awaitable, Callable, List, Tuple

from onboardflow.app.utils.logging import get_logger

logger = get_logger(__name__)

Hook = Callable[[], Awaitable[Any]]


class PostCommitHooks:
    """
    Ordered list of best-effort async callables.

    Usage:
        hooks = PostCommitHooks("update_case_status")
        hooks.add("audit", lambda: audit.record(entry))
        hooks.add("notify", lambda: notifications.create(spec))
        await hooks.run()
    """

    def __init__(self, operation: str):
        self.operation = operation
        self._hooks: List[Tuple[str, Hook]] = []

    def add(self, name: str, hook: Hook) -> "PostCommitHooks":
        self._hooks.append((name, hook))
        return self

    def __len__(self) -> int:
        return len(self._hooks)

    async def run(self) -> List[Any]:
        """
        Run every hook in order.

        Returns:
            One result per hook; None for hooks that failed
        """
        results = []
        for name, hook in self._hooks:
            try:
                results.append(await hook())
            except Exception as e:
                logger.warning(
                    "Post-commit hook failed",
                    operation=self.operation,
                    hook=name,
                    error=str(e),
                    error_type=type(e).__name__
                )
                results.append(None)
        return results
