"""Search profile service - active profile lookup, activation and centre resolution"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from farmaprice.models.search_profile import (
    LOCATION_AUTO,
    LOCATION_CEP,
    LOCATION_CITY,
    SearchProfile,
)
from farmaprice.schemas.search import Coordinates
from farmaprice.services.geocoding import GeocodingError, PostalCodeGeocoder

logger = logging.getLogger(__name__)


class LocationUnavailable(Exception):
    """The profile has no usable centre coordinate."""


class ProfileNotFound(LookupError):
    pass


async def list_profiles(db: AsyncSession, user_id: str) -> List[SearchProfile]:
    result = await db.execute(
        select(SearchProfile)
        .where(SearchProfile.user_id == user_id)
        .order_by(SearchProfile.created_at, SearchProfile.id)
    )
    return list(result.scalars().all())


async def get_active_profile(db: AsyncSession, user_id: str) -> Optional[SearchProfile]:
    """The user's active profile with its products and city loaded, or None."""
    result = await db.execute(
        select(SearchProfile).where(
            SearchProfile.user_id == user_id,
            SearchProfile.is_active == True,  # noqa: E712
        )
    )
    return result.scalar_one_or_none()


async def activate_profile(db: AsyncSession, user_id: str, profile_id: int) -> SearchProfile:
    """
    Make ``profile_id`` the user's only active profile.

    Both updates run in one transaction; the partial unique index on
    (user_id) WHERE is_active rejects any interleaving that would leave two
    active profiles.
    """
    result = await db.execute(
        select(SearchProfile).where(
            SearchProfile.id == profile_id,
            SearchProfile.user_id == user_id,
        )
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise ProfileNotFound(f"Profile {profile_id} not found")

    try:
        await db.execute(
            update(SearchProfile)
            .where(
                SearchProfile.user_id == user_id,
                SearchProfile.id != profile_id,
                SearchProfile.is_active == True,  # noqa: E712
            )
            .values(is_active=False)
        )
        await db.execute(
            update(SearchProfile)
            .where(SearchProfile.id == profile_id)
            .values(is_active=True)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(profile)
    logger.info(f"Activated profile {profile_id} for user {user_id}")
    return profile


async def resolve_coordinates(
    db: AsyncSession,
    profile: SearchProfile,
    geocoder: Optional[PostalCodeGeocoder] = None,
) -> Coordinates:
    """
    Centre point of a profile's searches.

    auto: coordinates pinned from the device once
    city: the reference city's fixed coordinates
    cep: pinned coordinates, geocoding and pinning the postal code on first use
    """
    if profile.location_type == LOCATION_CITY:
        city = profile.selected_city
        if city is None:
            raise LocationUnavailable("Perfil sem cidade selecionada")
        return Coordinates(lat=float(city.latitude), lon=float(city.longitude))

    if profile.saved_latitude is not None and profile.saved_longitude is not None:
        return Coordinates(lat=float(profile.saved_latitude), lon=float(profile.saved_longitude))

    if profile.location_type == LOCATION_AUTO:
        raise LocationUnavailable("Localização do dispositivo ainda não foi salva")

    if profile.location_type == LOCATION_CEP:
        if not profile.cep:
            raise LocationUnavailable("Perfil sem CEP")
        if geocoder is None:
            raise LocationUnavailable("Geocodificação de CEP indisponível")
        try:
            coords = await geocoder.geocode(profile.cep)
        except GeocodingError as e:
            raise LocationUnavailable(str(e)) from e

        profile.saved_latitude = Decimal(str(coords.lat))
        profile.saved_longitude = Decimal(str(coords.lon))
        profile.location_updated_at = datetime.utcnow()
        await db.commit()
        logger.info(f"Pinned CEP {profile.cep} of profile {profile.id} to ({coords.lat}, {coords.lon})")
        return coords

    raise LocationUnavailable(f"Tipo de localização desconhecido: {profile.location_type}")
