"""
API客户端模块

行情数据（CoinMarketCap / Solscan）客户端
"""
from .base import BaseAPIClient, APIResponse, APIError
from .market_data import CoinMarketCapClient, SolscanClient, compute_fear_greed

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "CoinMarketCapClient",
    "SolscanClient",
    "compute_fear_greed",
]
