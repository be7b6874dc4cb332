"""
TMS 后端 HTTP 客户端

所有请求都拼接在 TMS_BACKEND_URL 之后. 请求失败统一转换为 UnavailableError.
"""

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from tms_middleware.core.exceptions import UnavailableError


class TmsClient:
    """TMS 后端客户端类"""

    def __init__(self, base_url: Optional[str], timeout: float = 5.0, transport=None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.headers = {"User-Agent": "tms-middleware", "Accept": "application/json"}
        self._client: Optional[httpx.AsyncClient] = None
        if self.base_url:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                transport=transport,
            )

    @property
    def configured(self) -> bool:
        """是否配置了 TMS 后端地址"""
        return self._client is not None

    async def request(self, method: str, url: str, **kwargs) -> Any:
        """
        发送请求并返回 JSON 响应(非 JSON 响应返回文本)

        Raises:
            UnavailableError: 未配置后端地址, 网络错误, 超时或非 2xx 响应
        """
        if self._client is None:
            raise UnavailableError("未配置 TMS 后端地址")
        try:
            logger.debug(f"请求 TMS 后端: {method} {url}")
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"TMS 后端返回错误: {method} {url}, 状态码: {e.response.status_code}"
            )
            raise UnavailableError(
                "TMS 后端返回错误", {"status_code": e.response.status_code}
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"TMS 后端请求失败: {method} {url}, 错误: {e}")
            raise UnavailableError("TMS 后端不可用") from e

        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text

    async def get(self, url: str, **kwargs) -> Any:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, data: Any = None, **kwargs) -> Any:
        return await self.request("POST", url, json=data, **kwargs)

    async def put(self, url: str, data: Any = None, **kwargs) -> Any:
        return await self.request("PUT", url, json=data, **kwargs)

    async def delete(self, url: str, **kwargs) -> Any:
        return await self.request("DELETE", url, **kwargs)

    async def health_check(self) -> Dict[str, str]:
        """
        探测 TMS 后端的 /health 接口

        未配置地址时返回 warning, 请求失败返回 error.
        """
        if not self.configured:
            return {"status": "warning", "message": "未配置 TMS 后端地址"}
        try:
            await self.get("/health")
        except UnavailableError as e:
            logger.warning(f"TMS 后端健康检查失败: {e.message}")
            return {"status": "error", "message": e.message}
        return {"status": "ok", "message": "TMS 后端连接正常"}

    async def close(self):
        """关闭底层连接池"""
        if self._client is not None:
            await self._client.aclose()
            logger.info("TMS 后端客户端已关闭")
