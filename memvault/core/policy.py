"""
Failure policy for calls to the content store, structured table, embedding
provider and vector index.

The policy lives in one table keyed by (operation, stage). Every external call
goes through guarded_call(), which applies the timeout, logs a failure, and
either returns a "recovered" outcome or raises the stage's error.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Dict, Optional, Tuple

from .errors import (
    EmbeddingError,
    MemvaultError,
    NotFoundError,
    StoreError,
    ValidationError,
    VectorIndexError,
)
from ..util.logging import logger


class Stage(str, Enum):
    CONTENT = "content"
    STRUCTURED = "structured"
    EMBEDDING = "embedding"
    INDEX = "index"


class Severity(str, Enum):
    FATAL = "fatal"
    RECOVERABLE = "recoverable"


FATAL = Severity.FATAL
RECOVERABLE = Severity.RECOVERABLE

# (operation, stage) -> severity. Pairs not listed are fatal.
FAILURE_POLICY: Dict[Tuple[str, Stage], Severity] = {
    # create: content is authoritative; index/embedding failures propagate
    # after the content row is committed (content-only orphan)
    ("create", Stage.CONTENT): FATAL,
    ("create", Stage.EMBEDDING): FATAL,
    ("create", Stage.INDEX): FATAL,
    # update: index lags behind content on failure (stale entry)
    ("update", Stage.CONTENT): FATAL,
    ("update", Stage.EMBEDDING): RECOVERABLE,
    ("update", Stage.INDEX): RECOVERABLE,
    # delete: a leftover vector is hidden by the search orphan filter
    ("delete", Stage.CONTENT): FATAL,
    ("delete", Stage.INDEX): RECOVERABLE,
    ("get", Stage.CONTENT): FATAL,
    ("list", Stage.CONTENT): FATAL,
    ("search", Stage.EMBEDDING): FATAL,
    ("search", Stage.INDEX): FATAL,
    ("search", Stage.CONTENT): FATAL,
    ("search", Stage.STRUCTURED): FATAL,
    ("create_structured", Stage.STRUCTURED): FATAL,
    ("get_structured", Stage.STRUCTURED): FATAL,
    ("list_structured", Stage.STRUCTURED): FATAL,
    ("delete_structured", Stage.STRUCTURED): FATAL,
    ("init_schema", Stage.CONTENT): FATAL,
}

STAGE_ERRORS = {
    Stage.CONTENT: StoreError,
    Stage.STRUCTURED: StoreError,
    Stage.EMBEDDING: EmbeddingError,
    Stage.INDEX: VectorIndexError,
}

# Raised by stores to signal caller mistakes; these are not call failures
_PASSTHROUGH_ERRORS = (NotFoundError, ValidationError)


def severity_for(operation: str, stage: Stage) -> Severity:
    """Look up the policy for a failed call; unknown pairs are fatal."""
    return FAILURE_POLICY.get((operation, Stage(stage)), FATAL)


@dataclass
class CallOutcome:
    """Result of a guarded external call."""

    status: str  # "ok" | "recovered"
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def _fatal_error(operation: str, stage: Stage, error: BaseException,
                 memory_id: Optional[str], content_persisted: bool) -> MemvaultError:
    error_cls = STAGE_ERRORS[stage]
    message = f"{operation} failed at {stage.value} stage: {error}"
    if issubclass(error_cls, VectorIndexError):
        return error_cls(message, memory_id=memory_id, content_persisted=content_persisted)
    return error_cls(message, memory_id=memory_id)


async def guarded_call(
    operation: str,
    stage: Stage,
    call: Awaitable,
    timeout: Optional[float] = None,
    memory_id: Optional[str] = None,
    content_persisted: bool = False,
) -> CallOutcome:
    """
    Await an external call under the failure policy.

    Args:
        operation: Logical operation name ("create", "update", ...)
        stage: Which collaborator the call targets
        call: The awaitable to run
        timeout: Seconds before the call counts as failed; None disables the bound
        memory_id: Memory the call concerns, carried on raised errors
        content_persisted: Marks raised index errors as partial creates

    Returns:
        CallOutcome with status "ok" and the call's value, or status
        "recovered" with the error when the policy allows continuing.

    Raises:
        The stage's MemvaultError subclass when the policy is fatal.
    """
    stage = Stage(stage)
    try:
        if timeout is not None:
            value = await asyncio.wait_for(call, timeout)
        else:
            value = await call
    except _PASSTHROUGH_ERRORS:
        raise
    except asyncio.TimeoutError:
        error = TimeoutError(f"{stage.value} call timed out after {timeout}s")
    except Exception as e:
        error = e
    else:
        return CallOutcome(status="ok", value=value)

    severity = severity_for(operation, stage)
    logger.log_call_failure(operation, stage.value, error, severity.value,
                            {"memory_id": memory_id} if memory_id else None)

    if severity is RECOVERABLE:
        return CallOutcome(status="recovered", error=error)

    raise _fatal_error(operation, stage, error, memory_id, content_persisted) from error
