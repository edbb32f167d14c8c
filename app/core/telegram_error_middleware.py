"""
Global Telegram update error boundary middleware.

A handler exception must never take down update processing.
CancelledError always propagates.
TelegramForbiddenError and the harmless TelegramBadRequest cases (message not
modified, query too old) are dropped quietly.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from aiogram import BaseMiddleware
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from app.core.structured_logger import log_event

logger = logging.getLogger(__name__)

_SILENT_BAD_REQUESTS = ("message is not modified", "query is too old")


def _correlation_id(event: Any) -> Optional[str]:
    if hasattr(event, "update_id"):
        return str(event.update_id)
    callback_query = getattr(event, "callback_query", None)
    if callback_query is not None and getattr(callback_query, "id", None):
        return str(callback_query.id)
    message = getattr(event, "message", None)
    if message is not None and getattr(message, "message_id", None):
        return str(message.message_id)
    return None


def _user_id(event: Any) -> Optional[int]:
    for source in (event, getattr(event, "callback_query", None), getattr(event, "message", None)):
        from_user = getattr(source, "from_user", None) if source is not None else None
        if from_user is not None:
            return getattr(from_user, "id", None)
    return None


class TelegramErrorBoundaryMiddleware(BaseMiddleware):
    """
    Wraps handler execution in an error boundary.

    On an unexpected exception: logs a failed update_processing event with the
    traceback and returns None.
    """

    async def __call__(
        self,
        handler: Callable[[Any, Dict[str, Any]], Awaitable[Any]],
        event: Any,
        data: Dict[str, Any],
    ) -> Any:
        try:
            return await handler(event, data)
        except asyncio.CancelledError:
            raise
        except TelegramForbiddenError as e:
            logger.debug("TelegramForbiddenError (user blocked bot or removed from chat): %s", e)
            return None
        except TelegramBadRequest as e:
            error_msg = str(e).lower()
            if any(marker in error_msg for marker in _SILENT_BAD_REQUESTS):
                return None
            logger.warning("TelegramBadRequest: %s", e)
            return None
        except Exception as e:
            log_event(
                logger,
                component="telegram",
                operation="update_processing",
                correlation_id=_correlation_id(event),
                outcome="failed",
                reason=f"{type(e).__name__}: {str(e)[:200]}",
                level="error",
            )
            logger.exception(
                "UNHANDLED_HANDLER_EXCEPTION",
                extra={"update_type": type(event).__name__, "user_id": _user_id(event)},
            )
            return None
