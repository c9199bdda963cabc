"""Sequential workflow steps with compensating actions.

A ``Saga`` runs steps in order. Each successful step may register a
compensation; when a fail-fast step fails, the registered compensations run
in reverse order before the failure is re-raised as ``StepFailed``.
"""
from __future__ import annotations
import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Sequence

logger = logging.getLogger(__name__)


class StepPolicy(enum.Enum):
    """What a failed step does to the rest of the workflow."""
    
    FAIL_FAST = "fail_fast"
    LOG_AND_CONTINUE = "log_and_continue"


@dataclass(frozen=True)
class Step:
    """One remote mutation in a workflow.
    
    Attributes:
        name: Identifier used in logs and errors
        action: Zero-argument callable performing the mutation
        compensate: Optional callable undoing ``action``; receives its result
        policy: Failure tolerance for this step
    """
    name: str
    action: Callable[[], Any]
    compensate: Optional[Callable[[Any], Any]] = None
    policy: StepPolicy = StepPolicy.FAIL_FAST


class StepFailed(Exception):
    """A fail-fast step raised; compensations have already been unwound."""
    
    def __init__(self, step: str, cause: BaseException):
        self.step = step
        self.cause = cause
        super().__init__(f"{step}: {cause}")


@dataclass
class Saga:
    """Runs steps and keeps the stack of compensations for the successful ones."""
    name: str
    context: dict = field(default_factory=dict)
    failures: list[tuple[str, BaseException]] = field(default_factory=list)
    compensated: list[str] = field(default_factory=list)
    _stack: list[tuple[str, Callable[[Any], Any], Any]] = field(default_factory=list, repr=False)
    
    def run(self, step: Step) -> Any:
        """Execute a step and return its result.
        
        Returns None for a tolerated (log-and-continue) failure.
        
        Raises:
            StepFailed: When a fail-fast step fails
        """
        try:
            result = step.action()
        except Exception as exc:
            if step.policy is StepPolicy.LOG_AND_CONTINUE:
                logger.warning("[%s] step '%s' failed, continuing: %s %s", self.name, step.name, exc, self.context)
                self.failures.append((step.name, exc))
                return None
            logger.error("[%s] step '%s' failed: %s %s", self.name, step.name, exc, self.context)
            self.rollback()
            raise StepFailed(step.name, exc) from exc
        
        if step.compensate is not None:
            self._stack.append((step.name, step.compensate, result))
        return result
    
    def rollback(self) -> None:
        """Unwind registered compensations, most recent first.
        
        A failing compensation is logged; the unwind goes on with the next one.
        """
        while self._stack:
            name, compensate, result = self._stack.pop()
            try:
                compensate(result)
                self.compensated.append(name)
                logger.info("[%s] compensated step '%s' %s", self.name, name, self.context)
            except Exception as exc:
                logger.error(
                    "[%s] compensation for step '%s' failed: %s %s", self.name, name, exc, self.context
                )


def fan_out(
    func: Callable[[Any], Any],
    items: Sequence[Any] | Iterable[Any],
    max_workers: int = 4,
) -> list[tuple[Any, Optional[BaseException]]]:
    """Call ``func`` on every item with a bounded thread pool.
    
    Returns ``(item, error)`` pairs in input order; ``error`` is None on success.
    """
    items = list(items)
    if not items:
        return []
    
    def _call(item: Any) -> Optional[BaseException]:
        try:
            func(item)
        except Exception as exc:
            return exc
        return None
    
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(items)))) as pool:
        outcomes = list(pool.map(_call, items))
    return list(zip(items, outcomes))
