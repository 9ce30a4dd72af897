"""Runs several independent operations concurrently with isolated outcomes.

Agents and multi-query commands batch lookups to save round-trips. Each
operation runs as its own task; a failure is recorded against that operation
only and never cancels its siblings. Admission control still happens per call
in the rate limiter.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from prodcli.domain.errors import BatchValidationError

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 10


@dataclass(frozen=True)
class BatchOperation:
    """A named zero-argument coroutine factory."""
    name: str
    run: Callable[[], Awaitable[Any]]


@dataclass
class BatchOperationResult:
    name: str
    index: int
    data: Any = None
    error: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False, compare=False)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchReport:
    results: List[BatchOperationResult]

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    def summary(self) -> Dict[str, int]:
        return {"total": len(self.results), "succeeded": self.succeeded, "failed": self.failed}


def validate_operations(operations: Sequence[Any], max_size: int = MAX_BATCH_SIZE) -> List[BatchOperation]:
    """Checks the batch shape before anything runs."""
    if not isinstance(operations, (list, tuple)):
        raise BatchValidationError("operations must be a list", ["Provide a list of operations"])
    if not operations:
        raise BatchValidationError("operations list cannot be empty", ["Provide at least one operation"])
    if len(operations) > max_size:
        raise BatchValidationError(
            f"operations list exceeds maximum size of {max_size}",
            [f"Split the batch into chunks of {max_size} or fewer", f"You provided {len(operations)} operations"],
        )

    problems = []
    for index, op in enumerate(operations):
        if not isinstance(op, BatchOperation):
            problems.append(f"Operation at index {index}: must be a BatchOperation")
        elif not op.name.strip():
            problems.append(f"Operation at index {index}: missing name")
        elif not callable(op.run):
            problems.append(f"Operation at index {index}: run is not callable")
    if problems:
        raise BatchValidationError("Invalid operations in batch", problems)
    return list(operations)


class BatchService:
    """Executes up to ``max_size`` operations concurrently."""

    def __init__(self, max_size: int = MAX_BATCH_SIZE):
        if not 0 < max_size <= MAX_BATCH_SIZE:
            raise ValueError(f"max_size must be between 1 and {MAX_BATCH_SIZE}")
        self.max_size = max_size

    async def _run_one(self, op: BatchOperation, index: int) -> BatchOperationResult:
        try:
            data = await op.run()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Batch operation '{op.name}' (#{index}) failed: {e}")
            return BatchOperationResult(name=op.name, index=index, error=str(e) or type(e).__name__, exception=e)
        return BatchOperationResult(name=op.name, index=index, data=data)

    async def run(self, operations: Sequence[BatchOperation]) -> BatchReport:
        """Runs all operations and reports each outcome in input order.

        Raises:
            BatchValidationError: If the batch is empty, too large, or malformed.
        """
        validated = validate_operations(operations, self.max_size)
        logger.debug(f"Running batch of {len(validated)} operation(s)")
        results = await asyncio.gather(*(self._run_one(op, i) for i, op in enumerate(validated)))
        report = BatchReport(results=list(results))
        logger.info(f"Batch finished: {report.summary()}")
        return report
