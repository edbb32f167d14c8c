"""
Registered members CSV export.
"""
import asyncio
import csv
import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, List

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, FSInputFile, Message

from app.handlers.common.guards import resolve_operator
from app.services.members import EXPORT_HEADERS, build_members_export_rows, list_registered_members

admin_export_router = Router()
logger = logging.getLogger(__name__)


def _generate_csv_file(headers: List[str], rows: List[List[str]]) -> str:
    """
    Write the export into a temporary file and return its path.

    Runs in a worker thread; the caller removes the file.
    """
    with tempfile.NamedTemporaryFile(
        mode='w',
        suffix='.csv',
        delete=False,
        encoding='utf-8',
        newline=''
    ) as tmp_file:
        writer = csv.writer(tmp_file)
        writer.writerow(headers)
        writer.writerows(rows)
        return tmp_file.name


async def _export_members(operator: Dict[str, Any], chat_message: Message):
    members = await list_registered_members(operator["id"])
    if not members:
        await chat_message.answer("No registered members to export.")
        return

    now = datetime.now(timezone.utc)
    rows = build_members_export_rows(members, now)
    filename = f"registered_members_{now.strftime('%Y%m%d')}.csv"

    csv_file_path = None
    try:
        csv_file_path = await asyncio.to_thread(_generate_csv_file, EXPORT_HEADERS, rows)
        await chat_message.answer_document(
            FSInputFile(csv_file_path, filename=filename),
            caption=f"📤 Registered members: {len(rows)}",
        )
        logger.info(f"Members export sent [operator={operator['id']}, rows={len(rows)}]")
    finally:
        if csv_file_path:
            try:
                os.remove(csv_file_path)
            except OSError as e:
                logger.error(f"Error deleting temp file {csv_file_path}: {e}")


@admin_export_router.message(Command("export_members"))
async def cmd_export_members(message: Message):
    operator = await resolve_operator(message)
    if operator is None:
        return

    try:
        await _export_members(operator, message)
    except Exception as e:
        logger.exception(f"Error in cmd_export_members: {e}")
        await message.answer("❌ Export failed. Please try again later.")


@admin_export_router.callback_query(F.data == "members:export")
async def callback_export_members(callback: CallbackQuery):
    operator = await resolve_operator(callback)
    if operator is None:
        return

    await callback.answer()
    try:
        await _export_members(operator, callback.message)
    except Exception as e:
        logger.exception(f"Error in callback_export_members: {e}")
        await callback.message.answer("❌ Export failed. Please try again later.")
