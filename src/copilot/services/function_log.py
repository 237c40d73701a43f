"""Function-execution log for paid provider operations.

Every content generation, voiceover synthesis, video submission and
billing session creation writes one row to platform.function_logs with
its outcome and duration. Payloads are trimmed so large scripts or audio
metadata do not bloat the table.

A failed log write is reported through structlog and never fails the
operation being logged.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from src.copilot.models.platform import FunctionLog

logger = structlog.get_logger(__name__)

MAX_VALUE_LENGTH = 500


def trim_payload(data: Any, max_length: int = MAX_VALUE_LENGTH) -> Any:
    """Recursively shorten long strings inside a JSON-like value."""
    if isinstance(data, str):
        return data if len(data) <= max_length else data[:max_length] + "..."
    if isinstance(data, dict):
        return {str(k): trim_payload(v, max_length) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [trim_payload(v, max_length) for v in data]
    if data is None or isinstance(data, (int, float, bool)):
        return data
    return str(data)


class FunctionLogger:
    """Writes FunctionLog rows through an RLS-free session factory."""

    def __init__(self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        function_name: str,
        user_id: str | None,
        status: str,
        duration_ms: float | None = None,
        request_data: dict | None = None,
        response_data: dict | None = None,
        error_message: str | None = None,
    ) -> None:
        try:
            async for session in self._session_factory():
                session.add(FunctionLog(
                    function_name=function_name,
                    user_id=uuid.UUID(user_id) if user_id else None,
                    status=status,
                    duration_ms=duration_ms,
                    request_data=trim_payload(request_data or {}),
                    response_data=trim_payload(response_data or {}),
                    error_message=error_message[:2000] if error_message else None,
                ))
                await session.commit()
        except Exception:
            logger.warning(
                "function_log.write_failed",
                function_name=function_name,
                exc_info=True,
            )

    @asynccontextmanager
    async def track(
        self,
        function_name: str,
        user_id: str | None,
        request_data: dict | None = None,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Time a block and log success or error when it exits.

        Usage:
            async with function_logger.track("generate_content", user_id, req) as out:
                result = await do_work()
                out["content_id"] = result.id

        The exception, if any, is re-raised after logging.
        """
        response_data: dict[str, Any] = {}
        start = time.perf_counter()
        try:
            yield response_data
        except Exception as exc:
            await self.record(
                function_name,
                user_id,
                "error",
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                request_data=request_data,
                response_data=response_data,
                error_message=str(exc),
            )
            raise
        await self.record(
            function_name,
            user_id,
            "success",
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            request_data=request_data,
            response_data=response_data,
        )
