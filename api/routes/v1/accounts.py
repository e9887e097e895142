"""
api/routes/v1/accounts.py -- Profile image endpoints.

Routes:
  PUT    /api/v1/accounts/me/image  -- upload raw image bytes (requires auth)
  DELETE /api/v1/accounts/me/image  -- remove the profile image (requires auth)

The image store is an external collaborator (media/storage.py). Upload
failures answer 422 (bad payload) or 502 (store unavailable) and leave the
account untouched. Failing to delete the previous image is logged and
otherwise ignored -- an orphaned file is cheaper than a failed request.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from api.models import AccountResponse
from auth.dependencies import get_current_account
from auth.models import Account
from auth.store import AccountStore
from media.storage import ImageRejected, ImageStorage, ImageStorageError

logger = logging.getLogger("quill.api")

router = APIRouter()

_PROFILE_FOLDER = "profiles"


async def _drop_previous(storage: ImageStorage, public_id: str | None) -> None:
    if not public_id:
        return
    try:
        await run_in_threadpool(storage.delete, public_id)
    except ImageStorageError as exc:
        logger.warning("Could not delete previous image %s: %s", public_id, exc)


@router.put("/accounts/me/image", response_model=AccountResponse)
async def upload_image(request: Request, current_account: Account = Depends(get_current_account)) -> AccountResponse:
    """Store the request body as the account's profile picture."""
    storage: ImageStorage = request.app.state.image_storage
    store: AccountStore = request.app.state.account_store
    data = await request.body()

    try:
        stored = await run_in_threadpool(storage.upload, data, _PROFILE_FOLDER, f"account_{current_account.id}")
    except ImageRejected as exc:
        raise HTTPException(status_code=422, detail={"code": "image_rejected", "message": str(exc)}) from exc
    except ImageStorageError as exc:
        logger.error("Image upload failed for account %s: %s", current_account.id, exc)
        raise HTTPException(
            status_code=502,
            detail={"code": "image_upload_failed", "message": "Image storage is unavailable."},
        ) from exc

    await run_in_threadpool(store.update_image, current_account.id, stored.secure_url, stored.public_id)
    await _drop_previous(storage, current_account.image_public_id)

    updated = await run_in_threadpool(store.get_by_id, current_account.id)
    return AccountResponse.from_account(updated or current_account)


@router.delete("/accounts/me/image", response_model=AccountResponse)
async def delete_image(request: Request, current_account: Account = Depends(get_current_account)) -> AccountResponse:
    """Clear the profile picture, removing it from storage when we own it."""
    storage: ImageStorage = request.app.state.image_storage
    store: AccountStore = request.app.state.account_store

    await run_in_threadpool(store.update_image, current_account.id, None, None)
    await _drop_previous(storage, current_account.image_public_id)

    updated = await run_in_threadpool(store.get_by_id, current_account.id)
    return AccountResponse.from_account(updated or current_account)
