from fastapi import APIRouter

from app.domain.plans import PLANS
from app.schemas.billing import PlanCatalogResponse, PlanOut

router = APIRouter()


@router.get("/plans", response_model=PlanCatalogResponse)
async def list_plans():
    """Public plan catalog."""
    return PlanCatalogResponse(plans=[PlanOut.model_validate(plan) for plan in PLANS.values()])
