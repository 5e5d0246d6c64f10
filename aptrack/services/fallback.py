"""Ordered fallback strategies.

A strategy is a named async callable returning a ``StrategyResult``. Strategies
run in list order until one succeeds; the order itself is the fallback policy.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

from aptrack.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class Outcome(str, Enum):
    SUCCESS = "success"
    SKIP = "skip"
    FAIL = "fail"


@dataclass
class StrategyResult:
    outcome: Outcome
    value: Any = None
    reason: Optional[str] = None
    strategy: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None) -> "StrategyResult":
        return cls(Outcome.SUCCESS, value=value)

    @classmethod
    def skip(cls, reason: str) -> "StrategyResult":
        return cls(Outcome.SKIP, reason=reason)

    @classmethod
    def fail(cls, reason: str) -> "StrategyResult":
        return cls(Outcome.FAIL, reason=reason)

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


@dataclass
class Strategy:
    name: str
    run: Callable[[], Awaitable[StrategyResult]]


async def run_strategies(strategies: Sequence[Strategy], operation: str = "fallback") -> StrategyResult:
    """Run strategies in order, returning the first success.

    When nothing succeeds the result is FAIL if any strategy failed, else SKIP.
    A strategy that raises counts as FAIL.
    """
    failure: Optional[StrategyResult] = None
    last: Optional[StrategyResult] = None

    for strategy in strategies:
        try:
            result = await strategy.run()
        except Exception as e:
            result = StrategyResult.fail(str(e))
        result.strategy = strategy.name

        if result.ok:
            logger.debug(f"{operation} served by {strategy.name}", operation=operation, strategy=strategy.name)
            return result

        logger.debug(
            f"{operation} strategy did not succeed",
            operation=operation,
            strategy=strategy.name,
            outcome=result.outcome.value,
            reason=result.reason
        )
        if result.outcome is Outcome.FAIL:
            failure = result
        last = result

    if failure is not None:
        return failure
    return last or StrategyResult.skip("no strategies")
