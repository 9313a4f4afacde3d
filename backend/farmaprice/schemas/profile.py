"""Search profile schemas"""
from typing import List, Optional
from decimal import Decimal
from pydantic import BaseModel, ConfigDict


class ProfileProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    active_ingredient: Optional[str] = None
    own_price: Optional[Decimal] = None


class SearchProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    profile_name: str
    is_active: bool
    search_radius_km: int
    location_type: str
    selected_city_id: Optional[int] = None
    cep: Optional[str] = None
    saved_latitude: Optional[Decimal] = None
    saved_longitude: Optional[Decimal] = None
    products: List[ProfileProductResponse] = []


class SearchProfileListResponse(BaseModel):
    profiles: List[SearchProfileResponse]
    count: int
