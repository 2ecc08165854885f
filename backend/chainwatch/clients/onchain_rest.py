"""REST client for public Bitcoin market and on-chain APIs.

Sources:
- CoinGecko: spot snapshot and price history
- mempool.space: mempool size and recommended fees
- Blockstream: recent blocks, block transactions, address history
- Blockchair: richest addresses

Every method raises on transport or HTTP errors; callers decide how to
degrade.
"""

import asyncio
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any

import httpx

from chainwatch.config import Settings, get_settings
from core.models.market import (
    AddressActivity,
    ExchangeFlow,
    FeeRates,
    MempoolSnapshot,
    PricePoint,
    PriceSnapshot,
    TopHolder,
    TxType,
    WhaleTransaction,
)

SATOSHI = 1e8
BTC_SUPPLY = 21_000_000
BLOCK_PAGE_SIZE = 25
MAX_BLOCK_PAGES = 8
MAX_LARGE_TRANSACTIONS = 100
WHALE_BALANCE = 10_000

UNKNOWN_OWNER = "unknown"

KNOWN_EXCHANGES: dict[str, str] = {
    "bc1qm34lsc65zpw79lxes69zkqmk6ee3ewf0j77s3": "Binance",
    "3M219KR5vEneNb47ewrPfWyb5jQ2DjxRP6": "Binance",
    "bc1qxy2kgdygjrsqtzq2n0yrf2493p83kkfjhx0wlh": "Binance",
    "1NDyJtNTjmwk5xPNhjgAMu4HDHigtobu1s": "Binance Cold",
    "34xp4vRoCGJym3xR7yCVPFHoCNxv4Twseo": "Binance Cold",
    "bc1qa5wkgaew2dkv56kc6hp23ly7fz289203x3kjjy": "Coinbase",
    "3Kzh9qAqVWQhEsfQz7zEQL1EuSx5tyNLNS": "Coinbase",
    "1FzWLkAahHooV3kzTgyx6qsXoRDrBsrACw": "Bitfinex",
    "3JZq4atUahhuA9rLhXLMhhTo133J9rF97j": "Bitfinex",
    "bc1qgdjqv0av3q56jvd82tkdjpy7gdp9ut8tlqmgrpmv24sq90ecnvqqjwvw97": "Bitfinex",
    "1KAt6STtisWMMVo5XGdos9P7DBNNsFfjx7": "OKX",
    "3LYJfcfHPXYJreMsASk2jkn69LWEYKzexb": "Kraken",
    "385cR5DM96n1HvBDMzLHPYcw89fZAXULJP": "Huobi",
    "3FHNBLobJnbCTFTVakh5TXmEneyf5PT61B": "Gemini",
    "37XuVSEpWW4trkfmvWzegTHQt7BdktSKUs": "Bitfinex",
    "bc1q4c8n5t00jmj8temxdgcc3t32nkg2wjwz24lywv": "Bybit",
}

HOLDER_LABELS: dict[str, str] = {
    "34xp4vRoCGJym3xR7yCVPFHoCNxv4Twseo": "Binance Cold Wallet",
    "bc1qgdjqv0av3q56jvd82tkdjpy7gdp9ut8tlqmgrpmv24sq90ecnvqqjwvw97": "Bitfinex Cold Wallet",
    "1FeexV6bAHb8ybZjqQMjJrcCrHGW9sb6uF": "Satoshi Era Wallet",
    "bc1qa5wkgaew2dkv56kc6hp23ly7fz289203x3kjjy": "Coinbase Prime",
    "37XuVSEpWW4trkfmvWzegTHQt7BdktSKUs": "Bitfinex",
    "1NDyJtNTjmwk5xPNhjgAMu4HDHigtobu1s": "Binance",
    "bc1qm34lsc65zpw79lxes69zkqmk6ee3ewf0j77s3": "Binance Hot Wallet",
    "3M219KR5vEneNb47ewrPfWyb5jQ2DjxRP6": "Binance",
}


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, calls_per_minute: int = 120):
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limit."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            wait_time = self.last_call + self.interval - loop.time()
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self.last_call = loop.time()


def _from_timestamp(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _exchange_owner(addresses: list[str]) -> str:
    """First known exchange among the addresses, else 'unknown'."""
    for address in addresses:
        owner = KNOWN_EXCHANGES.get(address)
        if owner:
            return owner
    return UNKNOWN_OWNER


def classify_transfer(from_owner: str, to_owner: str) -> TxType:
    """Deposit into / withdrawal from an exchange, or a plain whale transfer."""
    if from_owner != UNKNOWN_OWNER and to_owner == UNKNOWN_OWNER:
        return TxType.EXCHANGE_WITHDRAWAL
    if from_owner == UNKNOWN_OWNER and to_owner != UNKNOWN_OWNER:
        return TxType.EXCHANGE_DEPOSIT
    return TxType.WHALE_TRANSFER


def parse_whale_transaction(
    tx: dict[str, Any], block_time: datetime, min_btc: float
) -> WhaleTransaction | None:
    """Turn a Blockstream transaction into a WhaleTransaction if it is large enough."""
    vout = tx.get("vout") or []
    total_out = sum(o.get("value") or 0 for o in vout) / SATOSHI
    if total_out < min_btc:
        return None

    input_addrs = [
        v["prevout"]["scriptpubkey_address"]
        for v in tx.get("vin") or []
        if (v.get("prevout") or {}).get("scriptpubkey_address")
    ]
    output_addrs = [o["scriptpubkey_address"] for o in vout if o.get("scriptpubkey_address")]

    from_owner = _exchange_owner(input_addrs)
    to_owner = _exchange_owner(output_addrs)
    txid = tx.get("txid", "")
    return WhaleTransaction(
        id=txid[:16],
        hash=txid,
        timestamp=block_time,
        amount=total_out,
        from_address=input_addrs[0] if input_addrs else "coinbase",
        to_address=output_addrs[0] if output_addrs else UNKNOWN_OWNER,
        from_owner=from_owner,
        to_owner=to_owner,
        type=classify_transfer(from_owner, to_owner),
    )


def bucket_flows(
    transactions: list[WhaleTransaction], days: int, today: date
) -> list[ExchangeFlow]:
    """
    Sum exchange deposits (inflow) and withdrawals (outflow) per UTC day.

    Only days in ``today - days + 1`` .. ``today`` that hold at least one
    scanned transaction are returned, oldest first. Days the scanned blocks
    do not cover are left out rather than reported as zero flow.
    """
    first_day = today - timedelta(days=days - 1)
    observed: set[date] = set()
    inflow: dict[date, float] = defaultdict(float)
    outflow: dict[date, float] = defaultdict(float)
    for tx in transactions:
        day = tx.timestamp.astimezone(timezone.utc).date()
        if not first_day <= day <= today:
            continue
        observed.add(day)
        if tx.type == TxType.EXCHANGE_DEPOSIT:
            inflow[day] += tx.amount
        elif tx.type == TxType.EXCHANGE_WITHDRAWAL:
            outflow[day] += tx.amount

    flows = []
    for day in sorted(observed):
        flows.append(ExchangeFlow(
            timestamp=datetime(day.year, day.month, day.day, tzinfo=timezone.utc),
            inflow=inflow[day],
            outflow=outflow[day],
            netflow=inflow[day] - outflow[day],
        ))
    return flows


class OnChainClient:
    """Market and on-chain data over public REST endpoints."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.rate_limiter = RateLimiter(self.settings.requests_per_minute)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.settings.http_timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET with rate limiting; raises on HTTP errors."""
        await self.rate_limiter.acquire()
        client = await self._get_client()
        response = await client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    # -------------------------------------------------------------------------
    # Prices
    # -------------------------------------------------------------------------

    async def get_price_series(self, days: int) -> list[PricePoint]:
        data = await self._get(
            f"{self.settings.coingecko_url}/coins/bitcoin/market_chart",
            params={"vs_currency": "usd", "days": days},
        )
        return [
            PricePoint(time=_from_timestamp(ts / 1000), price=price)
            for ts, price in data["prices"]
        ]

    async def get_current_snapshot(self) -> PriceSnapshot:
        data = await self._get(
            f"{self.settings.coingecko_url}/coins/bitcoin",
            params={
                "localization": "false",
                "tickers": "false",
                "community_data": "false",
                "developer_data": "false",
            },
        )
        md = data["market_data"]
        return PriceSnapshot(
            price=md["current_price"]["usd"],
            change_24h=md.get("price_change_24h") or 0.0,
            change_percent_24h=md.get("price_change_percentage_24h") or 0.0,
            high_24h=(md.get("high_24h") or {}).get("usd", 0.0),
            low_24h=(md.get("low_24h") or {}).get("usd", 0.0),
            market_cap=(md.get("market_cap") or {}).get("usd", 0.0),
            volume_24h=(md.get("total_volume") or {}).get("usd", 0.0),
        )

    # -------------------------------------------------------------------------
    # Mempool
    # -------------------------------------------------------------------------

    async def get_mempool_snapshot(self) -> MempoolSnapshot:
        mempool, fees = await asyncio.gather(
            self._get(f"{self.settings.mempool_url}/mempool"),
            self._get(f"{self.settings.mempool_url}/v1/fees/recommended"),
        )
        return MempoolSnapshot(
            count=mempool["count"],
            vsize=mempool.get("vsize", 0),
            total_fee=mempool.get("total_fee", 0.0),
            fee_rates=FeeRates(
                fastest=fees.get("fastestFee", 0.0),
                half_hour=fees.get("halfHourFee", 0.0),
                hour=fees.get("hourFee", 0.0),
                economy=fees.get("economyFee", 0.0),
            ),
        )

    # -------------------------------------------------------------------------
    # Blocks and transactions
    # -------------------------------------------------------------------------

    async def _scan_block(
        self, block_hash: str, block_time: datetime, min_btc: float
    ) -> list[WhaleTransaction]:
        """Large transactions of one block, paging through its transactions."""
        whales: list[WhaleTransaction] = []
        for page in range(MAX_BLOCK_PAGES):
            start = page * BLOCK_PAGE_SIZE
            try:
                txs = await self._get(
                    f"{self.settings.blockstream_url}/block/{block_hash}/txs/{start}"
                )
            except httpx.HTTPStatusError:
                # Past the last page
                if page == 0:
                    raise
                break
            if not txs:
                break
            for tx in txs:
                whale = parse_whale_transaction(tx, block_time, min_btc)
                if whale is not None:
                    whales.append(whale)
        return whales

    async def get_large_transactions(
        self, min_amount: float, block_depth: int
    ) -> list[WhaleTransaction]:
        blocks = await self._get(f"{self.settings.blockstream_url}/blocks")
        results = await asyncio.gather(*[
            self._scan_block(b["id"], _from_timestamp(b["timestamp"]), min_amount)
            for b in blocks[:block_depth]
        ])
        transactions = [tx for block in results for tx in block]
        transactions.sort(key=lambda t: t.amount, reverse=True)
        return transactions[:MAX_LARGE_TRANSACTIONS]

    async def get_address_last_activity(self, address: str) -> AddressActivity:
        """
        Previous activity of an address.

        The newest confirmed transaction is usually the one that triggered
        the lookup, so the second newest is used when there is more than one.
        """
        txs = await self._get(f"{self.settings.blockstream_url}/address/{address}/txs")
        times = sorted(
            (
                tx["status"]["block_time"]
                for tx in txs or []
                if (tx.get("status") or {}).get("block_time")
            ),
            reverse=True,
        )
        if not times:
            return AddressActivity(address=address)
        last_active = times[1] if len(times) > 1 else times[0]
        return AddressActivity(address=address, last_active=_from_timestamp(last_active))

    async def get_exchange_flows(self, days: int) -> list[ExchangeFlow]:
        """Daily exchange flows derived from classified large transactions."""
        transactions = await self.get_large_transactions(
            self.settings.large_tx_min_btc, self.settings.flow_block_depth
        )
        today = datetime.now(timezone.utc).date()
        return bucket_flows(transactions, days, today)

    # -------------------------------------------------------------------------
    # Holders
    # -------------------------------------------------------------------------

    async def get_top_holders(self) -> list[TopHolder]:
        data = await self._get(
            f"{self.settings.blockchair_url}/addresses",
            params={"s": "balance(desc)", "limit": 100},
        )
        holders = []
        for i, item in enumerate(data.get("data") or []):
            balance = item["balance"] / SATOSHI
            address = item["address"]
            label = HOLDER_LABELS.get(address) or ("whale" if balance > WHALE_BALANCE else "unknown")
            holders.append(TopHolder(
                rank=i + 1,
                address=address,
                balance=balance,
                percent_of_total=balance / BTC_SUPPLY * 100,
                label=label,
            ))
        return holders
