from aiogram import Router

from .members import admin_members_router
from .export import admin_export_router

router = Router()

router.include_router(admin_members_router)
router.include_router(admin_export_router)
