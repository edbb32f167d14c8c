"""
Handlers module - Telegram handlers for the merchant bot.

Root aggregation: admin (registered members, activation, export).
"""
from aiogram import Router

from .admin import router as admin_router

router = Router()

router.include_router(admin_router)
