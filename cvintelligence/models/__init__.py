from cvintelligence.models.user import User
from cvintelligence.models.analysis import CvAnalysis
from cvintelligence.models.payment import CreditPurchase
from cvintelligence.models.package import ProductPackage
from cvintelligence.models.setting import AppSetting
from cvintelligence.models.session import UserSession

__all__ = [
    "User",
    "CvAnalysis",
    "CreditPurchase",
    "ProductPackage",
    "AppSetting",
    "UserSession",
]
