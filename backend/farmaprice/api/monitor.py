"""Monitor endpoint - compare the active profile's products against nearby competitors"""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from farmaprice.api.deps import get_geocoder, get_price_monitor, get_user_id
from farmaprice.core.database import get_db
from farmaprice.schemas.monitor import MonitoringResponse
from farmaprice.services.geocoding import PostalCodeGeocoder
from farmaprice.services.price_monitor import PriceMonitor, calculate_stats
from farmaprice.services.profile_service import LocationUnavailable, get_active_profile, resolve_coordinates

router = APIRouter()


@router.post("", response_model=MonitoringResponse)
async def run_monitoring(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    monitor: PriceMonitor = Depends(get_price_monitor),
    geocoder: PostalCodeGeocoder = Depends(get_geocoder),
):
    """
    Run one monitoring pass for the caller's active profile.

    Products whose lookup fails come back marked ``degraded``; the pass
    itself only fails when there is no profile or no usable location.
    """
    profile = await get_active_profile(db, user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Nenhum perfil de busca ativo")

    try:
        center = await resolve_coordinates(db, profile, geocoder)
    except LocationUnavailable as e:
        raise HTTPException(status_code=422, detail=str(e))

    products = await monitor.monitor_products(
        list(profile.products), center, profile.search_radius_km, user_id=user_id
    )

    return MonitoringResponse(
        profile_id=profile.id,
        profile_name=profile.profile_name,
        coordinates=center,
        radius_km=profile.search_radius_km,
        products=products,
        stats=calculate_stats(products),
        checked_at=datetime.utcnow().isoformat(),
    )
