from farmaprice.models.product import MedicineCategory, Product
from farmaprice.models.pharmacy import Pharmacy
from farmaprice.models.observation import PriceObservation
from farmaprice.models.search_profile import ReferenceCity, SearchProfile, SearchProfileProduct
from farmaprice.models.alert import PriceAlert
from farmaprice.models.insight import AIInsight

__all__ = [
    "MedicineCategory",
    "Product",
    "Pharmacy",
    "PriceObservation",
    "ReferenceCity",
    "SearchProfile",
    "SearchProfileProduct",
    "PriceAlert",
    "AIInsight",
]
