"""Competitor price search schemas - canonical record and action responses"""
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class Coordinates(BaseModel):
    lat: float
    lon: float


class Establishment(BaseModel):
    """Where a price was observed"""
    nome: str
    cnpj: Optional[str] = None
    endereco: Optional[str] = None
    coordenadas: Optional[Coordinates] = None  # None = unknown location


class CompetitorPrice(BaseModel):
    """Canonical competitor price record, independent of the upstream field naming"""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    desc: str
    valor: float = Field(0.0, description="0 when the upstream price could not be parsed")
    estabelecimento: Establishment
    distkm: Optional[float] = Field(None, description="Distance from the query point, None if unknown")
    tempo: str = Field(..., description="Human-readable recency label")
    data_coleta: Optional[str] = Field(None, alias="dataColeta", description="ISO collection timestamp")

    @property
    def has_valid_price(self) -> bool:
        return self.valor > 0


class PriceSummary(BaseModel):
    """Summary over positive prices only"""
    total: int = 0
    min: Optional[float] = None
    max: Optional[float] = None
    avg: Optional[float] = None


class CategorySearchResponse(BaseModel):
    categorias: List[Any] = Field(default_factory=list)
    produtos: List[CompetitorPrice] = Field(default_factory=list)
    resumo: Optional[PriceSummary] = None
    geohash: str
    cached: bool = False


class ProductSearchResponse(BaseModel):
    produtos: List[CompetitorPrice] = Field(default_factory=list)
    resumo: PriceSummary = Field(default_factory=PriceSummary)
    geohash: str
    cached: bool = False
    message: Optional[str] = None


class FuelSearchResponse(BaseModel):
    postos: List[CompetitorPrice] = Field(default_factory=list)
    tipo: Optional[str] = None
    resumo: PriceSummary = Field(default_factory=PriceSummary)
    geohash: str
    cached: bool = False
    message: Optional[str] = None


class SnapshotRequest(BaseModel):
    """Body of POST ?action=snapshot"""
    termos: List[str] = Field(default_factory=list)
    # Parsed leniently by the search service: bad values fall back to defaults
    raio: Any = None
    lat: Any = None
    lon: Any = None


class SnapshotProduct(BaseModel):
    desc: str
    valor: float
    tempo: str
    data_coleta: Optional[str] = Field(None, alias="dataColeta")

    model_config = ConfigDict(populate_by_name=True)


class SnapshotEstablishment(BaseModel):
    nome: str
    cnpj: Optional[str] = None
    endereco: Optional[str] = None
    coordenadas: Optional[Coordinates] = None
    produtos: List[SnapshotProduct] = Field(default_factory=list)


class SnapshotTermResult(BaseModel):
    termo: str
    produtos: List[CompetitorPrice] = Field(default_factory=list)
    success: bool
    error: Optional[str] = None


class SnapshotResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: str
    total_produtos: int = Field(..., alias="totalProdutos")
    total_estabelecimentos: int = Field(..., alias="totalEstabelecimentos")
    estabelecimentos: List[SnapshotEstablishment] = Field(default_factory=list)
    detalhes: List[SnapshotTermResult] = Field(default_factory=list)
