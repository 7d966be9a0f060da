from expense_tracker.models.user import UserModel
from expense_tracker.models.catalog import (
    CategoryModel,
    SubcategoryModel,
    MerchantModel,
    ProductModel,
)
from expense_tracker.models.receipt import ReceiptModel, ReceiptItemModel
from expense_tracker.models.community import CommunityProductModel, CommunityMerchantModel

__all__ = [
    "UserModel",
    "CategoryModel",
    "SubcategoryModel",
    "MerchantModel",
    "ProductModel",
    "ReceiptModel",
    "ReceiptItemModel",
    "CommunityProductModel",
    "CommunityMerchantModel",
]
