"""Ordered strategy chains.

Each strategy is a zero-argument coroutine factory. Strategies run in order;
the first one that returns wins. A strategy hands over to the next by raising
FallbackSignal (or any exception type listed in ``fallback_on``). When every
strategy has handed over, the chain returns ``default``.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from .errors import FallbackSignal

logger = logging.getLogger(__name__)

T = TypeVar("T")

Strategy = tuple[str, Callable[[], Awaitable[T]]]


async def run_fallback_chain(
    strategies: Sequence[Strategy],
    default: Any = None,
    fallback_on: tuple[type[BaseException], ...] = (FallbackSignal,),
    chain_name: str = "chain",
) -> Any:
    """Run strategies in order and return the first result produced."""
    for name, strategy in strategies:
        try:
            result = await strategy()
        except fallback_on as e:
            logger.warning(f"{chain_name}: strategy '{name}' handed over: {e}")
            continue
        logger.debug(f"{chain_name}: strategy '{name}' succeeded")
        return result

    logger.warning(f"{chain_name}: all strategies exhausted, returning default")
    return default
