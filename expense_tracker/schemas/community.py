"""
Community directory request / response shapes
"""
from __future__ import annotations

from typing import Optional

from pydantic import Field

from expense_tracker.schemas.base import CamelModel


class CommunityProductContribution(CamelModel):
    name: str
    barcode: Optional[str] = None
    category_hint: Optional[str] = None


class CommunityMerchantContribution(CamelModel):
    name: str
    nif: Optional[str] = None
    address: Optional[str] = None


class CommunityProduct(CamelModel):
    id: str
    name: str
    barcode: Optional[str] = None
    category_hint: Optional[str] = None
    trust_score: int
    contribution_count: int


class CommunityMerchant(CamelModel):
    id: str
    name: str
    nif: Optional[str] = None
    address: Optional[str] = None
    trust_score: int
    contribution_count: int


class CommunityProductList(CamelModel):
    products: list[CommunityProduct] = Field(default_factory=list)


class CommunityMerchantList(CamelModel):
    merchants: list[CommunityMerchant] = Field(default_factory=list)


class CommunityProductResponse(CamelModel):
    product: CommunityProduct


class CommunityMerchantResponse(CamelModel):
    merchant: CommunityMerchant


class SyncContributionsResponse(CamelModel):
    message: str
    products_added: int
    merchants_added: int


class CommunityPullResponse(CamelModel):
    products: list[CommunityProduct] = Field(default_factory=list)
    merchants: list[CommunityMerchant] = Field(default_factory=list)
