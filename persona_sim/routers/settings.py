from __future__ import annotations

from fastapi import APIRouter, Depends, Form

from ..dependencies import get_app_settings

router = APIRouter()


@router.get("/settings/status")
def get_settings_status(settings=Depends(get_app_settings)):
    return {"keys": settings.keys_status()}


@router.post("/settings")
async def post_settings(
    store_api_key: str | None = Form(default=None),
    service_api_key: str | None = Form(default=None),
    persist: bool = Form(default=False),
    settings=Depends(get_app_settings),
):
    status = settings.set_keys(store=store_api_key, service=service_api_key, persist=persist)
    return {"ok": True, "keys": status, "persisted": persist}


__all__ = ["router"]
