"""Logging configuration using loguru with actor and workbook context."""

import sys
from contextvars import ContextVar
from typing import Any

from loguru import logger

# Context for the operation currently being handled
actor_ctx: ContextVar[str | None] = ContextVar("actor", default=None)
workbook_ctx: ContextVar[str | None] = ContextVar("workbook_id", default=None)


def get_context() -> dict[str, Any]:
    """Get the current actor/workbook context for logging."""
    return {"actor": actor_ctx.get(), "workbook_id": workbook_ctx.get()}


def format_record(record: dict) -> str:
    """Format log record with actor and workbook context.

    The context travels in ``extra`` and is referenced from the template, so
    braces or markup tags in an actor name are printed as they are.
    """
    context_parts = []
    workbook_id = workbook_ctx.get()
    actor = actor_ctx.get()
    if workbook_id:
        context_parts.append(f"wb={workbook_id[:8]}")
    if actor:
        context_parts.append(f"actor={actor}")

    context_str = " ".join(context_parts)
    if context_str:
        context_str = f"[{context_str}] "
    record["extra"]["context"] = context_str

    return (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "{extra[context]}"
        "<level>{message}</level>\n"
        "{exception}"
    )


def setup_logging(json_logs: bool = False, log_level: str = "INFO") -> None:
    """Configure loguru for auditgrid.

    Args:
        json_logs: If True, output logs as JSON
        log_level: Minimum log level to output
    """
    logger.remove()

    if json_logs:
        logger.add(
            sys.stdout,
            format="{message}",
            level=log_level,
            serialize=True,
        )
    else:
        logger.add(
            sys.stdout,
            format=format_record,
            level=log_level,
            colorize=True,
        )


def set_context(actor: str | None = None, workbook_id: str | None = None) -> None:
    """Set the actor/workbook context for subsequent log lines."""
    if actor is not None:
        actor_ctx.set(actor)
    if workbook_id is not None:
        workbook_ctx.set(workbook_id)


def clear_context() -> None:
    actor_ctx.set(None)
    workbook_ctx.set(None)
