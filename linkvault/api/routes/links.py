"""
Link endpoints: manual metadata refresh.
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from linkvault.api.auth import verify_api_key
from linkvault.api.dependencies import get_scheduler
from linkvault.api.models import ManualRefreshResponse
from linkvault.errors import LinkNotFoundError, LinkNotRefreshableError, StorageError
from linkvault.scheduler.service import RefreshScheduler

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post(
    "/links/{link_id}/refresh",
    response_model=ManualRefreshResponse,
    summary="Refresh a link now",
    description=(
        "Fetch fresh metadata for one link and apply the result with the same "
        "status rules as the scheduler. Works for repo_unavailable links."
    ),
)
async def refresh_link(
    link_id: UUID,
    api_key: str = Depends(verify_api_key),
    scheduler: RefreshScheduler = Depends(get_scheduler),
) -> ManualRefreshResponse:
    try:
        result = await scheduler.refresh_link(link_id)
    except LinkNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Link {link_id} not found",
        )
    except LinkNotRefreshableError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )
    except StorageError as e:
        logger.error("Manual refresh failed", link_id=str(link_id), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage unavailable",
        )

    return ManualRefreshResponse(**result.to_dict())
