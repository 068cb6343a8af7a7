"""
Asynchronous executor for blocking collaborator calls.
Runs Supabase/BigQuery lookups in a thread pool so per-store lookups of one
comparison proceed concurrently without blocking the event loop.
"""
import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from storecompare.config import settings
from storecompare.errors import EngineError, UpstreamUnavailable

logger = logging.getLogger(__name__)

# Thread pool for executing store calls (which are blocking operations)
_THREAD_POOL = ThreadPoolExecutor(max_workers=settings.STORE_THREAD_POOL_SIZE)


class AsyncQueryService:
    """
    Service for executing blocking store calls asynchronously with timeouts.
    Unlike a cache-backed query helper there is no fallback data: a timeout or
    store failure surfaces as UpstreamUnavailable instead of a stale answer.
    """

    @staticmethod
    async def run(
        func: Callable,
        *args: Any,
        timeout: Optional[float] = None,
        operation: Optional[str] = None,
    ) -> Any:
        """
        Execute func(*args) in the thread pool.

        Args:
            func: Blocking callable
            args: Positional arguments for func
            timeout: Seconds to wait (defaults to STORE_TIMEOUT_SECONDS)
            operation: Name used in logs and error messages

        Returns:
            Whatever func returns

        Raises:
            EngineError subclasses raised by func, unchanged
            UpstreamUnavailable on timeout or any other failure
        """
        timeout = settings.STORE_TIMEOUT_SECONDS if timeout is None else timeout
        operation = operation or getattr(func, "__name__", "store call")
        start_time = time.time()
        try:
            result = await asyncio.wait_for(
                asyncio.get_running_loop().run_in_executor(_THREAD_POOL, partial(func, *args)),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"{operation} timed out after {timeout} seconds")
            raise UpstreamUnavailable(f"{operation} timed out after {timeout} seconds")
        except EngineError:
            raise
        except Exception as e:
            logger.error(f"Error executing {operation}: {e}")
            raise UpstreamUnavailable(f"{operation} failed: {e}") from e

        logger.debug(f"{operation} completed in {time.time() - start_time:.3f} seconds")
        return result

    @staticmethod
    async def run_parallel(
        calls: Dict[Hashable, Tuple],
        timeout: Optional[float] = None,
    ) -> Dict[Hashable, Any]:
        """
        Execute several blocking calls concurrently and wait for all of them.

        Args:
            calls: Mapping of result key to (func, *args)
            timeout: Per-call timeout in seconds

        Returns:
            Dict with the result of each call under its key. The first failure
            is raised once every call has finished.
        """
        keys = list(calls)
        tasks = [
            AsyncQueryService.run(calls[key][0], *calls[key][1:], timeout=timeout, operation=f"{calls[key][0].__name__}[{key}]")
            for key in keys
        ]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results = {}
        for key, outcome in zip(keys, outcomes):
            if isinstance(outcome, BaseException):
                raise outcome
            results[key] = outcome
        return results


# Create a singleton instance of the async query service
async_query_service = AsyncQueryService()
