from fastapi import APIRouter

from storycraft.api.auth_deps import CatalogDep
from storycraft.schemas.plan import PlanEntry

router = APIRouter()


@router.get("", response_model=list[PlanEntry])
async def list_plans(catalog: CatalogDep) -> list[PlanEntry]:
    """Purchasable plans and prices."""
    return catalog.entries()
