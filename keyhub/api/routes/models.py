"""
Models API routes (OpenAI compatible).
"""
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from keyhub.api.dependencies import get_database, verify_api_key
from keyhub.api.schemas import Model, ModelsListResponse
from keyhub.core.logger import get_logger
from keyhub.models.provider import Provider, ProviderModel

logger = get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["models"])


@router.get(
    "/models",
    response_model=ModelsListResponse,
    dependencies=[Depends(verify_api_key)]
)
async def list_models(db: AsyncSession = Depends(get_database)):
    """List the distinct model ids served by active providers."""
    result = await db.execute(
        select(ProviderModel.model_id)
        .join(Provider, Provider.id == ProviderModel.provider_id)
        .where(
            Provider.is_active == True,  # noqa: E712
            ProviderModel.is_active == True  # noqa: E712
        )
        .distinct()
        .order_by(ProviderModel.model_id)
    )
    model_ids = result.scalars().all()
    
    logger.info("Models list requested", count=len(model_ids))
    return ModelsListResponse(data=[Model(id=model_id, owned_by="keyhub") for model_id in model_ids])
