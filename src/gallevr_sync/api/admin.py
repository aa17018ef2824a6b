"""Token-protected control endpoints."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from gallevr_sync.api.models import ManualUploadRequest  # noqa: TC001

if TYPE_CHECKING:
    from gallevr_sync.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str | None:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str | None = Depends(_get_admin_token),
) -> None:
    """Reject requests without the configured token; no token disables access."""
    if not admin_token or not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/uploads", dependencies=[Depends(require_admin)])
async def request_upload(
    payload: ManualUploadRequest, request: Request
) -> dict[str, object]:
    """Upload a photo from the screenshots directory on demand."""
    container: AppContainer = request.app.state.container
    photos_directory = container.photos_directory.resolve()
    path = Path(payload.path)
    if not path.is_absolute():
        path = photos_directory / path
    path = path.resolve()
    if not path.is_relative_to(photos_directory):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Path is outside the screenshots directory",
        )
    record = container.matcher.request_upload(path)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return {
        "file_path": str(record.file_path),
        "gallery_url": record.gallery_url,
        "queued": record.gallery_url is None,
    }
