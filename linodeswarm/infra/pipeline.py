"""Sequential async pipeline.

Every multi-host step runs through ``for_each``: one item at a time, the
next item only after the previous one finished. A worker that raises aborts
the traversal; nothing after it runs and the exception reaches the caller.

Example:
    async def boot(host: str) -> None:
        ...

    await for_each(["dev100", "dev101"], boot)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

from loguru import logger

type Worker[T] = Callable[[T], Awaitable[None]]
type Completion = Callable[[BaseException | None], None]


async def for_each[T](
    items: Iterable[T],
    worker: Worker[T],
    *,
    on_complete: Completion | None = None,
) -> None:
    """Run ``worker`` over ``items`` strictly in order.

    Args:
        items: Items to process. Materialized up front so the traversal
            works on a frozen snapshot.
        worker: Async unit of work. Returning advances, raising aborts.
        on_complete: Optional continuation, invoked exactly once with
            ``None`` after the last item or with the aborting exception.

    Raises:
        Whatever the worker raised; the traversal stops at that item.
    """
    snapshot = list(items)
    for index, item in enumerate(snapshot):
        try:
            await worker(item)
        except Exception as e:
            logger.bind(component="pipeline").debug(
                "Aborted at item {index}/{total} ({item!r}): {error}",
                index=index + 1, total=len(snapshot), item=item, error=e,
            )
            if on_complete is not None:
                on_complete(e)
            raise
    if on_complete is not None:
        on_complete(None)
