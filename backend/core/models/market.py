"""Market and on-chain data records consumed from the data source."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class TxType(str, Enum):
    """Classification of a large transaction by known exchange ownership."""

    EXCHANGE_DEPOSIT = "exchange_deposit"
    EXCHANGE_WITHDRAWAL = "exchange_withdrawal"
    WHALE_TRANSFER = "whale_transfer"
    UNKNOWN = "unknown"


class PricePoint(BaseModel):
    """One sample of a price series."""

    model_config = ConfigDict(frozen=True)

    time: datetime
    price: float


class PriceSnapshot(BaseModel):
    """Current market snapshot."""

    model_config = ConfigDict(frozen=True)

    price: float
    change_24h: float = 0.0
    change_percent_24h: float = 0.0
    high_24h: float = 0.0
    low_24h: float = 0.0
    market_cap: float = 0.0
    volume_24h: float = 0.0


class FeeRates(BaseModel):
    """Recommended fee rates in sat/vB."""

    model_config = ConfigDict(frozen=True)

    fastest: float = 0.0
    half_hour: float = 0.0
    hour: float = 0.0
    economy: float = 0.0


class MempoolSnapshot(BaseModel):
    """Mempool state."""

    model_config = ConfigDict(frozen=True)

    count: int
    vsize: int = 0
    total_fee: float = 0.0
    fee_rates: FeeRates = FeeRates()


class WhaleTransaction(BaseModel):
    """A large on-chain transaction."""

    model_config = ConfigDict(frozen=True)

    id: str
    hash: str
    timestamp: datetime
    amount: float  # BTC
    from_address: str
    to_address: str
    from_owner: str = "unknown"
    to_owner: str = "unknown"
    type: TxType = TxType.UNKNOWN


class TopHolder(BaseModel):
    """A ranked top-balance address."""

    model_config = ConfigDict(frozen=True)

    rank: int
    address: str
    balance: float  # BTC
    percent_of_total: float = 0.0
    label: str = "unknown"


class AddressActivity(BaseModel):
    """Last on-chain activity of an address (None = no recorded activity)."""

    model_config = ConfigDict(frozen=True)

    address: str
    last_active: datetime | None = None


class ExchangeFlow(BaseModel):
    """Daily exchange inflow/outflow in BTC."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    inflow: float
    outflow: float
    netflow: float


@dataclass
class MarketSample:
    """Everything fetched in one tick. None means the feed was unavailable."""

    fetched_at: datetime
    price_series: dict[int, list[PricePoint]] = field(default_factory=dict)  # by window days
    snapshot: PriceSnapshot | None = None
    mempool: MempoolSnapshot | None = None
    large_transactions: list[WhaleTransaction] | None = None
    holders: list[TopHolder] | None = None
    flows: dict[int, list[ExchangeFlow]] = field(default_factory=dict)  # by window days

    def prices(self, days: int) -> list[float] | None:
        series = self.price_series.get(days)
        if series is None:
            return None
        return [p.price for p in series]
