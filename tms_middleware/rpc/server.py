"""
TCP RPC 服务

与 HTTP 服务运行在同一个事件循环中, 由应用的 lifespan 启动和停止.

请求: {"pattern": "user.findAll", "data": {...}, "id": "..."}
回复: {"id": "...", "response": {"success": true, "data": ...}, "isDisposed": true}
失败: {"id": "...", "response": {"success": false, "error": {code, message, details}}, "isDisposed": true}

每条消息独立处理, 处理时间超过 RPC_TIMEOUT_SECONDS 返回 UNAVAILABLE.
"""

import asyncio
import time
from typing import Any, Dict, Optional, Set

from fastapi.encoders import jsonable_encoder
from loguru import logger
from pydantic import ValidationError

from tms_middleware.core.container import AppContainer
from tms_middleware.core.exceptions import AppError, InternalError, UnavailableError
from tms_middleware.core.logging import get_access_logger
from tms_middleware.rpc.framing import FrameDecoder, FramingError, encode_frame
from tms_middleware.rpc.handlers import auth, health, orders, roles, users
from tms_middleware.rpc.router import RpcDispatcher, RpcRouter
from tms_middleware.schemas.rpc import RpcRequest

access_logger = get_access_logger("rpc")

READ_CHUNK_SIZE = 64 * 1024


def build_router() -> RpcRouter:
    """汇总所有消息模式"""
    router = RpcRouter()
    for module in (auth, users, roles, orders, health):
        router.include_router(module.router)
    return router


def validation_error(error: ValidationError) -> Dict[str, Any]:
    return {
        "code": "VALIDATION_ERROR",
        "message": "请求参数校验失败",
        "details": {
            "errors": jsonable_encoder(
                error.errors(include_url=False, include_context=False)
            )
        },
    }


class RpcServer:
    """TCP RPC 服务类"""

    def __init__(
        self,
        dispatcher: RpcDispatcher,
        host: str,
        port: int,
        timeout: float = 5.0,
    ):
        self.dispatcher = dispatcher
        self.host = host
        self.port = port
        self.timeout = timeout
        self._server: Optional[asyncio.AbstractServer] = None
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_container(cls, container: AppContainer) -> "RpcServer":
        settings = container.settings
        return cls(
            RpcDispatcher(container, build_router()),
            host=settings.TCP_HOST,
            port=settings.TCP_PORT,
            timeout=settings.RPC_TIMEOUT_SECONDS,
        )

    @property
    def bound_port(self) -> Optional[int]:
        """实际监听的端口(配置为 0 时由系统分配)"""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self):
        self._server = await asyncio.start_server(
            self._handle_connection, self.host, self.port
        )
        logger.info(f"TCP RPC 服务已启动: {self.host}:{self.bound_port}")

    async def stop(self):
        if self._server is None:
            return
        self._server.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._server.wait_closed()
        self._server = None
        logger.info("TCP RPC 服务已停止")

    async def handle_message(self, message: Any) -> Optional[Dict[str, Any]]:
        """
        处理一条消息, 返回回复内容

        没有 id 的消息视为事件, 处理后不回复(返回 None).
        """
        start_time = time.perf_counter()
        message_id = message.get("id") if isinstance(message, dict) else None
        pattern = message.get("pattern") if isinstance(message, dict) else None

        try:
            request = RpcRequest.model_validate(message)
            result = await asyncio.wait_for(
                self.dispatcher.dispatch(request.pattern, request.data), self.timeout
            )
            response = {"success": True, "data": jsonable_encoder(result)}
        except asyncio.TimeoutError:
            logger.error(f"RPC 消息处理超时: pattern={pattern}, timeout={self.timeout}s")
            response = {
                "success": False,
                "error": UnavailableError("请求处理超时, 请稍后重试").to_dict(),
            }
        except ValidationError as e:
            response = {"success": False, "error": validation_error(e)}
        except AppError as e:
            response = {"success": False, "error": e.to_dict()}
        except Exception:
            logger.exception(f"RPC 消息处理异常: pattern={pattern}")
            response = {"success": False, "error": InternalError("服务内部错误").to_dict()}

        duration = (time.perf_counter() - start_time) * 1000
        outcome = "ok" if response["success"] else response["error"]["code"]
        access_logger.info(f"{pattern} {outcome} {duration:.2f}ms id={message_id}")

        if message_id is None:
            return None
        return {"id": message_id, "response": response, "isDisposed": True}

    async def _process(self, message: Any, writer: asyncio.StreamWriter, lock: asyncio.Lock):
        reply = await self.handle_message(message)
        if reply is None:
            return
        async with lock:
            try:
                writer.write(encode_frame(reply))
                await writer.drain()
            except ConnectionError as e:
                logger.warning(f"RPC 回复发送失败: id={reply['id']}, error={e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ):
        peer = writer.get_extra_info("peername")
        logger.debug(f"RPC 客户端已连接: {peer}")
        decoder = FrameDecoder()
        lock = asyncio.Lock()
        pending: Set[asyncio.Task] = set()

        try:
            while True:
                chunk = await reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                try:
                    messages = decoder.feed(chunk)
                except FramingError as e:
                    logger.warning(f"RPC 消息格式错误, 断开连接: {peer}, error={e}")
                    break
                for message in messages:
                    task = self._spawn(self._process(message, writer, lock))
                    pending.add(task)
                    task.add_done_callback(pending.discard)
            # 对端关闭写方向后, 仍然把已收到消息的回复发送完
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        except ConnectionError as e:
            logger.debug(f"RPC 连接异常: {peer}, error={e}")
        finally:
            for task in pending:
                task.cancel()
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass
            logger.debug(f"RPC 客户端已断开: {peer}")
