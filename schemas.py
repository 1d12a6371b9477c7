# schemas.py
import datetime
import re
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# --- MORPHO DATA ---

class Asset(BaseModel):
    symbol: str
    decimals: int
    address: str


class RewardAsset(BaseModel):
    symbol: str
    name: str
    address: str


class VaultReward(BaseModel):
    supply_apr: float
    asset: Optional[RewardAsset] = None


class VaultApy(BaseModel):
    """APY figures in percent."""
    base: float = 0.0
    rewards: float = 0.0
    reward_tokens: List[VaultReward] = []


class MorphoVault(BaseModel):
    id: str
    name: str
    address: str
    total_assets: str = "0"
    total_supply: str = "0"
    share_price: str = "1000000"
    apy: VaultApy = Field(default_factory=VaultApy)
    asset: Asset


class PositionVault(BaseModel):
    id: str
    address: str
    name: str
    asset: Asset


class UserVaultPosition(BaseModel):
    vault: PositionVault
    balance: float
    deposited: float
    withdrawn: float = 0.0
    shares: str
    share_price: Optional[float] = None
    timestamp: Optional[int] = None
    apy: Optional[VaultApy] = None


class TransactionVault(BaseModel):
    address: str
    symbol: Optional[str] = None
    name: Optional[str] = None


class TransactionData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    shares: str = "0"
    assets: float = 0.0
    assets_usd: Optional[float] = Field(default=None, alias="assetsUsd")
    vault: TransactionVault

    @field_validator("shares", mode="before")
    @classmethod
    def shares_as_string(cls, value: Any) -> str:
        # BigInt fields can arrive as JSON numbers
        return "0" if value is None else str(value)


class Transaction(BaseModel):
    id: str
    timestamp: int
    hash: str
    type: Literal["MetaMorphoDeposit", "MetaMorphoWithdraw"]
    data: TransactionData


class YieldCalculation(BaseModel):
    current_balance: float
    total_deposited: float
    total_withdrawn: float
    net_yield: float
    yield_percentage: float
    price_per_share: float


class VaultWithYield(MorphoVault):
    user_position: Optional[UserVaultPosition] = None
    yield_data: Optional[YieldCalculation] = None


class ChainVaultData(BaseModel):
    chain_id: int
    chain_name: str
    vaults: List[VaultWithYield]
    total_net_yield: float
    transactions: List[Transaction] = []


# --- YIELD SUMMARIES ---

class VaultBreakdownItem(BaseModel):
    name: str
    balance: str
    net_yield: str
    apy: float


class YieldNotificationData(BaseModel):
    total_balance: str
    total_deposited: str
    total_yield: str
    yield_percentage: float
    yield_24h: str
    yield_24h_percentage: float
    vault_breakdown: List[VaultBreakdownItem]


class HistoricalYieldData(BaseModel):
    timestamp: datetime.datetime
    total_balance: float
    total_deposited: float
    total_yield: float
    chain_data: Optional[Any] = None

    model_config = ConfigDict(from_attributes=True)


# --- REWARDS ---

class MerklToken(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str
    chain_id: Optional[int] = Field(default=None, alias="chainId")
    symbol: str
    decimals: int = 18
    price: Optional[float] = 0.0


class MerklBreakdown(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reason: Optional[str] = None
    amount: str = "0"
    claimed: str = "0"
    pending: str = "0"
    campaign_id: Optional[str] = Field(default=None, alias="campaignId")
    sub_campaign_id: Optional[str] = Field(default=None, alias="subCampaignId")


class MerklReward(BaseModel):
    root: Optional[str] = None
    recipient: Optional[str] = None
    amount: str = "0"
    claimed: str = "0"
    pending: str = "0"
    proofs: List[str] = []
    token: MerklToken
    breakdowns: List[MerklBreakdown] = []


class CombinedReward(BaseModel):
    symbol: str
    name: str
    address: str
    claimable: float
    accruing: float
    claimable_value: float
    accruing_value: float
    price: float
    sources: List[str]


class ClaimableRewardsData(BaseModel):
    usdc: float = 0.0
    morpho: float = 0.0
    fxn: float = 0.0
    total: float = 0.0


# --- REQUESTS ---

class PushKeys(BaseModel):
    p256dh: str = Field(min_length=1)
    auth: str = Field(min_length=1)


class PushSubscriptionInfo(BaseModel):
    endpoint: str = Field(min_length=1)
    keys: PushKeys


class AddressRequest(BaseModel):
    address: str = Field(min_length=1)


class SubscribeRequest(AddressRequest):
    subscription: PushSubscriptionInfo
    chain_ids: List[int] = [1]


class SendNotificationRequest(AddressRequest):
    yield_data: YieldNotificationData


class EmailRequest(BaseModel):
    email: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def check_email_format(cls, value: str) -> str:
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email format")
        return value


class EmailSubscriptionRequest(EmailRequest):
    address: str = Field(min_length=1)


# --- RESPONSES ---

class UserSubscription(BaseModel):
    address: str
    subscription: PushSubscriptionInfo
    chain_ids: List[int]
    created_at: Optional[datetime.datetime] = None
    last_notified: Optional[datetime.datetime] = None


class DailyResults(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[str] = []
