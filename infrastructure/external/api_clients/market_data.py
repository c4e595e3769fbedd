"""
行情数据客户端 - CoinMarketCap 与 Solscan

为话题推送（crypto-updates / fear-greed-updates / solana-updates）提供数据。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.config import MarketDataSettings
from .base import BaseAPIClient


def _utc_now_z() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def classify_fear_greed(value: int) -> str:
    if value >= 75:
        return "Extreme Greed"
    if value >= 55:
        return "Greed"
    if value >= 45:
        return "Neutral"
    if value >= 25:
        return "Fear"
    return "Extreme Fear"


def compute_fear_greed(metrics: Dict[str, Any]) -> Dict[str, Any]:
    """
    根据全局市场指标估算恐惧贪婪指数（0-100）

    BTC 主导率越高越偏恐惧，山寨币主导率与成交额/市值比越高越偏贪婪。
    """
    btc_dominance = float(metrics.get("btc_dominance") or 0)
    eth_dominance = float(metrics.get("eth_dominance") or 0)
    alt_dominance = 100 - (btc_dominance + eth_dominance)
    usd = ((metrics.get("quote") or {}).get("USD") or {})
    total_market_cap = float(usd.get("total_market_cap") or 0)
    total_volume_24h = float(usd.get("total_volume_24h") or 0)
    volume_to_cap = (total_volume_24h / total_market_cap * 100) if total_market_cap else 0.0

    raw = (
        50
        + (alt_dominance - 30) * 0.5
        + (btc_dominance - 40) * -0.3
        + (volume_to_cap - 5) * 2
    )
    value = max(0, min(100, int(round(raw))))
    return {
        "value": value,
        "value_classification": classify_fear_greed(value),
        "timestamp": _utc_now_z(),
        "btc_dominance": btc_dominance,
        "eth_dominance": eth_dominance,
        "alt_dominance": alt_dominance,
        "volume_to_cap_ratio": volume_to_cap,
    }


class CoinMarketCapClient(BaseAPIClient):
    """CoinMarketCap Pro API"""

    def __init__(self, api_key: str, base_url: str = "https://pro-api.coinmarketcap.com", **kwargs):
        super().__init__(base_url=base_url, headers={"X-CMC_PRO_API_KEY": api_key}, **kwargs)

    async def trending_coins(self, limit: int = 10) -> List[Dict[str, Any]]:
        response = await self.get(
            "/v1/cryptocurrency/listings/latest",
            params={"limit": limit, "sort": "market_cap", "sort_dir": "desc", "convert": "USD"},
        )
        coins = []
        for coin in (response.json() or {}).get("data") or []:
            usd = (coin.get("quote") or {}).get("USD") or {}
            coins.append({
                "id": coin.get("id"),
                "name": coin.get("name"),
                "symbol": coin.get("symbol"),
                "slug": coin.get("slug"),
                "price": usd.get("price"),
                "percent_change_24h": usd.get("percent_change_24h"),
                "market_cap": usd.get("market_cap"),
                "volume_24h": usd.get("volume_24h"),
                "rank": coin.get("cmc_rank"),
            })
        return coins

    async def fear_greed(self) -> Dict[str, Any]:
        response = await self.get("/v1/global-metrics/quotes/latest")
        return compute_fear_greed((response.json() or {}).get("data") or {})


class SolscanClient(BaseAPIClient):
    """Solscan Pro API"""

    def __init__(self, api_key: str, base_url: str = "https://pro-api.solscan.io", **kwargs):
        super().__init__(base_url=base_url, headers={"token": api_key}, **kwargs)

    async def trending_tokens(self, limit: int = 100) -> List[Dict[str, Any]]:
        response = await self.get(
            "/v2.0/token/list",
            params={"sortBy": "volume24h", "direction": "desc", "limit": limit},
        )
        tokens = []
        for index, token in enumerate((response.json() or {}).get("data") or [], start=1):
            tokens.append({
                "id": index,
                "name": token.get("name"),
                "symbol": token.get("symbol"),
                "slug": token.get("address"),
                "price": token.get("price"),
                "percent_change_24h": token.get("priceChange24h"),
                "market_cap": token.get("marketCap"),
                "volume_24h": token.get("volume24h"),
                "rank": index,
            })
        return tokens


def build_cmc_client(config: MarketDataSettings) -> Optional[CoinMarketCapClient]:
    if not config.cmc_api_key:
        return None
    return CoinMarketCapClient(
        config.cmc_api_key,
        base_url=config.cmc_base_url,
        timeout=config.timeout,
        max_retries=config.max_retries,
    )


def build_solscan_client(config: MarketDataSettings) -> Optional[SolscanClient]:
    if not config.solscan_api_key:
        return None
    return SolscanClient(
        config.solscan_api_key,
        base_url=config.solscan_base_url,
        timeout=config.timeout,
        max_retries=config.max_retries,
    )
