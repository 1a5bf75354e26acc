from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_settings_store, verify_admin
from .models import LinkingSettingsRead, LinkingSettingsUpdate
from ..db.settings_store import LinkingSettingsStore

router = APIRouter(
    prefix="/admin/internal-linking",
    tags=["internal-linking"],
    dependencies=[Depends(verify_admin)],
)

Store = Annotated[LinkingSettingsStore, Depends(get_settings_store)]


@router.get("/settings", response_model=LinkingSettingsRead)
async def read_settings(store: Store) -> LinkingSettingsRead:
    record = await store.get()
    return LinkingSettingsRead.model_validate(record)


@router.put("/settings", response_model=LinkingSettingsRead)
async def update_settings(req: LinkingSettingsUpdate, store: Store) -> LinkingSettingsRead:
    """
    Apply a partial update. Threshold and cap changes take effect on the next
    similarity pass or lookup; no recomputation is triggered here.
    """
    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    record = await store.update(changes)
    return LinkingSettingsRead.model_validate(record)
