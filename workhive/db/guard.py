from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workhive.common.exceptions import ConflictError, StorageFaultError
from workhive.common.logging import get_logger

logger = get_logger("db.guard")


@contextmanager
def storage_guard(operation: str) -> Iterator[None]:
    """Translate driver errors raised inside the block into API errors.

    Unique-constraint violations become ``ConflictError`` (the caller may retry);
    anything else from the store is a ``StorageFaultError`` and is not retried.
    """
    try:
        yield
    except IntegrityError as e:
        logger.warning("Integrity conflict during %s: %s", operation, e.orig)
        raise ConflictError(f"Concurrent write rejected during {operation}") from e
    except SQLAlchemyError as e:
        logger.error("Storage fault during %s: %s", operation, e)
        raise StorageFaultError(operation) from e


@asynccontextmanager
async def savepoint(db: AsyncSession, operation: str) -> AsyncIterator[None]:
    """Apply the block's changes under a SAVEPOINT and flush them on exit.

    Mutate objects *inside* the block: ``begin_nested`` flushes pending state
    before the SAVEPOINT is emitted, so earlier changes are not protected.
    """
    with storage_guard(operation):
        async with db.begin_nested():
            yield
