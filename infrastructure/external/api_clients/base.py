"""
行情 REST 客户端基类

- 429 / 5xx、超时、网络错误自动重试（tenacity，指数退避）
- 429 优先遵循 Retry-After
- 非重试错误按状态码归类为 AuthenticationError / RateLimitError / ServerError
"""
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger


logger = get_logger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass
class APIResponse:
    status_code: int
    data: Any
    raw_content: bytes
    elapsed_ms: float
    retry_after: Optional[float] = None

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def json(self) -> Any:
        if self.data is not None:
            return self.data
        return json.loads(self.raw_content) if self.raw_content else None

    def error_message(self) -> str:
        """CMC 把错误放在 status.error_message，Solscan 用 message/error"""
        fallback = f"API request failed with status {self.status_code}"
        if not isinstance(self.data, dict):
            return fallback
        status_block = self.data.get("status")
        if isinstance(status_block, dict) and status_block.get("error_message"):
            return str(status_block["error_message"])
        return str(self.data.get("message") or self.data.get("error") or fallback)


class APIError(Exception):
    """API错误基类"""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[APIResponse] = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(message)

    def __str__(self):
        if self.status_code:
            return f"{self.message} | Status: {self.status_code}"
        return self.message


class AuthenticationError(APIError):
    """API Key 无效或额度不足（401/402/403）"""


class RateLimitError(APIError):
    pass


class ServerError(APIError):
    pass


class _Retryable(APIError):
    """内部使用：触发 tenacity 重试"""


def _error_class(status_code: int) -> type:
    if status_code in (401, 402, 403):
        return AuthenticationError
    if status_code == 429:
        return RateLimitError
    if status_code >= 500:
        return ServerError
    return APIError


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    try:
        return float(value) if value else None
    except ValueError:
        return None


class BaseAPIClient:
    """
    行情 API 客户端基类，子类只实现具体端点

    Args:
        base_url: API基础URL
        timeout: 请求超时时间（秒）
        max_retries: 最大重试次数（不含首次请求）
        retry_delay: 退避基数（秒）
        headers: 默认请求头（API Key 等）
        transport: 自定义 httpx transport（测试时注入 MockTransport）
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._headers = {"Accept": "application/json", "User-Agent": "FeedRealtimeHub/1.0", **(headers or {})}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "market_api_retry",
            base_url=self.base_url,
            attempt=retry_state.attempt_number,
            error=str(exc) if exc else None,
        )

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, _Retryable) and exc.response is not None and exc.response.retry_after:
            return exc.response.retry_after
        backoff = wait_exponential(multiplier=self.retry_delay, min=self.retry_delay, max=self.retry_delay * 8)
        return backoff(retry_state)

    async def _send_once(self, method: str, endpoint: str, params: Optional[Dict[str, Any]]) -> APIResponse:
        started = time.perf_counter()
        response = await self._get_client().request(method, "/" + endpoint.lstrip("/"), params=params)
        elapsed_ms = (time.perf_counter() - started) * 1000
        data = None
        if "application/json" in response.headers.get("content-type", ""):
            try:
                data = response.json()
            except json.JSONDecodeError:
                data = None
        api_response = APIResponse(
            status_code=response.status_code,
            data=data,
            raw_content=response.content,
            elapsed_ms=elapsed_ms,
            retry_after=_parse_retry_after(response.headers.get("retry-after")),
        )
        logger.debug("market_api_response", endpoint=endpoint, status_code=api_response.status_code,
                     elapsed_ms=round(api_response.elapsed_ms, 1))

        if api_response.status_code in RETRY_STATUS_CODES:
            raise _Retryable(api_response.error_message(), api_response.status_code, api_response)
        if api_response.is_error:
            raise _error_class(api_response.status_code)(
                api_response.error_message(), api_response.status_code, api_response
            )
        return api_response

    async def _request(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, _Retryable)),
            before_sleep=self._log_retry,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._send_once(method, endpoint, params)
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout after {self.timeout}s") from exc
        except httpx.NetworkError as exc:
            raise APIError(f"Network error: {exc}") from exc
        except _Retryable as exc:
            raise _error_class(exc.status_code or 500)(exc.message, exc.status_code, exc.response) from exc

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("GET", endpoint, **kwargs)
