"""Apply a change locally before the remote commit, undoing it on failure."""

import inspect
import logging
from collections.abc import Callable
from typing import Any

from bizdesk.core.exceptions import sanitize_error

logger = logging.getLogger(__name__)


async def _call(func: Callable[..., Any], *args: Any) -> Any:
    result = func(*args)
    if inspect.isawaitable(result):
        return await result
    return result


async def with_optimistic_update(
    apply_locally: Callable[[], Any],
    commit_remotely: Callable[[], Any],
    revert_locally: Callable[[], Any],
    on_error: Callable[[str], Any] | None = None,
) -> Any:
    """Run ``apply_locally``, then ``commit_remotely``; revert if the commit fails.

    Each callable may be sync or async. When the commit fails,
    ``revert_locally`` runs, ``on_error`` (if given) receives a message safe
    to show a person, and the commit's exception is re-raised.

    Returns:
        Whatever ``commit_remotely`` returned.
    """
    await _call(apply_locally)
    try:
        return await _call(commit_remotely)
    except Exception as e:
        logger.warning("Remote commit failed, reverting optimistic change", exc_info=True)
        await _call(revert_locally)
        if on_error is not None:
            await _call(on_error, sanitize_error(e))
        raise
