from .participant import Participant
from .referral import Referral, ReferralStatus
from .app_setting import AppSetting

__all__ = [
    "Participant",
    "Referral",
    "ReferralStatus",
    "AppSetting",
]
