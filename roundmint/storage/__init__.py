from ._schema import SCHEMA_VERSION, SCHEMA_SQL
from .accounts import AccountRepo
from .rounds import RoundRepo
from .participants import ParticipantRepo
from .supply import SupplyRepo
from .settlement_repo import SettlementRepo
from .activity import ActivityRepo
from .referrals import ReferralRepo
from .shop import ShopCreditRepo
from .manager import StorageManager

__all__ = [
    "SCHEMA_VERSION",
    "SCHEMA_SQL",
    "AccountRepo",
    "RoundRepo",
    "ParticipantRepo",
    "SupplyRepo",
    "SettlementRepo",
    "ActivityRepo",
    "ReferralRepo",
    "ShopCreditRepo",
    "StorageManager",
]
