from .models import Offer, OfferListing, SaleRecord, SaleResult
from .service import MarketplaceService

__all__ = ["MarketplaceService", "Offer", "OfferListing", "SaleRecord", "SaleResult"]
