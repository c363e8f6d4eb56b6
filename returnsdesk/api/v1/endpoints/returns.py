"""API endpoints for the returns listing (filters, accounts, paging, review statuses)."""
from fastapi import APIRouter, HTTPException, Response, status

from returnsdesk.api.deps import ManagerDep
from returnsdesk.schemas.annotation import Annotation
from returnsdesk.schemas.view import (
    AccountSelectionUpdate,
    FilterUpdate,
    PageUpdate,
    ReturnsView,
    ReviewStatusUpdate,
)

router = APIRouter()


def _rejected(manager) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=manager.view().error or "Invalid query change",
    )


# ==================== Listing ====================

@router.get("/", response_model=ReturnsView)
async def get_returns_view(manager: ManagerDep):
    """Current grouped returns with loading and error state."""
    return manager.view()


@router.post("/refresh", response_model=ReturnsView)
async def refresh_returns(manager: ManagerDep):
    """Refetch the active query from the returns service."""
    return await manager.refresh()


# ==================== Filters ====================

@router.patch("/filters", response_model=ReturnsView)
async def update_filters(update: FilterUpdate, manager: ManagerDep):
    """Merge the given filter fields; the fetch runs after the debounce period."""
    if not manager.set_filters(update.model_dump(exclude_unset=True)):
        raise _rejected(manager)
    return manager.view()


@router.put("/filters", response_model=ReturnsView)
async def replace_filters(update: FilterUpdate, manager: ManagerDep):
    if not manager.replace_filters(update.model_dump(exclude_none=True)):
        raise _rejected(manager)
    return manager.view()


@router.delete("/filters", response_model=ReturnsView)
async def clear_filters(manager: ManagerDep):
    manager.clear_filters()
    return manager.view()


# ==================== Accounts & Paging ====================

@router.put("/accounts", response_model=ReturnsView)
async def set_accounts(update: AccountSelectionUpdate, manager: ManagerDep):
    """Select one account (single mode) or several (multi mode)."""
    if not manager.set_account_selection(update.account_ids):
        raise _rejected(manager)
    return manager.view()


@router.put("/page", response_model=ReturnsView)
async def set_page(update: PageUpdate, manager: ManagerDep):
    # Page size first: changing it resets the page to 1
    if update.page_size is not None and not manager.set_page_size(update.page_size):
        raise _rejected(manager)
    if update.page is not None and not manager.set_page(update.page):
        raise _rejected(manager)
    return manager.view()


# ==================== Review Annotations ====================

@router.put("/annotations/{record_id}", response_model=Annotation)
async def set_review_status(record_id: str, update: ReviewStatusUpdate, manager: ManagerDep):
    """Assign a local review status to one return."""
    annotation = manager.set_review_status(record_id, update.status)
    if annotation is None:
        raise _rejected(manager)
    return annotation


@router.delete("/annotations", status_code=status.HTTP_204_NO_CONTENT)
async def clear_annotations(manager: ManagerDep):
    manager.clear_annotations()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/annotations/prune")
async def prune_annotations(manager: ManagerDep):
    """Drop annotations past the retention period."""
    removed = manager.prune_annotations()
    return {"removed": removed, "remaining": len(manager.annotations)}
