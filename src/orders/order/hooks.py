"""Post-commit hooks — side effects that run after a change is persisted.

Hooks receive the order ID and a plain dict describing the change. They run
strictly after the order lock is released, so a slow or failing hook never
holds up or rolls back the change that triggered it.
"""

from collections.abc import Callable

import structlog

logger = structlog.get_logger(__name__)

PostCommitHook = Callable[[str, dict], None]


class PostCommitHooks:
    def __init__(self, hooks: list[PostCommitHook] | None = None):
        self._hooks: list[PostCommitHook] = list(hooks or [])

    def register(self, hook: PostCommitHook) -> PostCommitHook:
        self._hooks.append(hook)
        return hook

    def __len__(self) -> int:
        return len(self._hooks)

    def run(self, order_id: str, change: dict) -> None:
        for hook in list(self._hooks):
            try:
                hook(order_id, change)
            except Exception as e:
                logger.error(
                    "Post-commit hook failed",
                    order_id=order_id,
                    change_type=change.get("type"),
                    hook=getattr(hook, "__name__", type(hook).__name__),
                    error=str(e),
                )
