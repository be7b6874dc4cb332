"""
loguru 日志配置

- 控制台和 app.log 记录全部日志, error.log 只保留 ERROR 及以上并附带堆栈
- 可按模块前缀额外写入单独文件, RPC 服务写入 rpc.log
- HTTP 请求和 RPC 消息共用 access.log, 通过 extra.channel 区分

启动时在 create_app 的 lifespan 中调用 setup_logging, 业务代码直接
`from loguru import logger` 使用; 访问日志通过 get_access_logger("rpc") 获取.
"""

from typing import Callable, Dict, Optional
from pathlib import Path
from loguru import logger
import sys

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
ERROR_FORMAT = FILE_FORMAT + "\n{exception}"
ACCESS_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {extra[channel]: <4} | {message}"


class LoggingManager:
    """日志管理器, 负责管理所有日志配置"""

    def __init__(self):
        self.log_dir: Optional[Path] = None
        self.module_loggers: Dict[str, int] = {}  # 模块名 -> handler id
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _add_file_sink(
        self,
        filename: str,
        level: str,
        fmt: str = FILE_FORMAT,
        rotation: str = "100 MB",
        retention: str = "30 days",
        record_filter: Optional[Callable] = None,
    ) -> int:
        """在日志目录下添加一个按大小轮转, 压缩归档的文件 handler"""
        return logger.add(
            self.log_dir / filename,
            format=fmt,
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            encoding="utf-8",
            filter=record_filter,
        )

    def setup(
        self,
        log_dir: Path,
        log_level: str = "INFO",
        enable_access_log: bool = True,
    ):
        """
        初始化日志系统

        Args:
            log_dir: 日志目录路径
            log_level: 日志级别 (DEBUG/INFO/WARNING/ERROR/CRITICAL)
            enable_access_log: 是否启用访问日志
        """
        if self._initialized:
            # 同一进程中多次创建应用(如测试)时只初始化一次
            logger.debug("日志系统已初始化, 跳过重复初始化")
            return

        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        # 移除 loguru 的默认 handler
        logger.remove()

        # 控制台 + app.log 记录所有日志, error.log 只记录 ERROR 及以上
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True)
        self._add_file_sink("app.log", log_level)
        self._add_file_sink("error.log", "ERROR", ERROR_FORMAT, "50 MB", "90 days")

        # 访问日志 (HTTP + RPC, 可选)
        if enable_access_log:
            self._add_file_sink(
                "access.log",
                "INFO",
                ACCESS_FORMAT,
                record_filter=lambda record: record["extra"].get("access", False),
            )

        self._initialized = True
        logger.debug(f"日志系统初始化完成, 日志目录: {self.log_dir}")

    def register_module_logger(
        self, module_name: str, log_filename: str, log_level: str = "DEBUG"
    ):
        """
        为特定模块注册单独的日志文件

        Args:
            module_name: 模块名 (如 "tms_middleware.rpc")
            log_filename: 日志文件名 (如 "rpc.log")
            log_level: 该模块的日志级别

        注意:
            - 模块日志会同时写入 app.log 和指定的单独文件
            - 同一模块重复注册时替换之前的配置
        """
        if not self._initialized or not self.log_dir:
            raise RuntimeError("日志系统尚未初始化, 请先调用 setup()")

        if module_name in self.module_loggers:
            logger.remove(self.module_loggers.pop(module_name))

        self.module_loggers[module_name] = self._add_file_sink(
            log_filename,
            log_level,
            ERROR_FORMAT,
            rotation="50 MB",
            record_filter=lambda record: record["name"].startswith(module_name),
        )
        logger.info(f"已为模块 '{module_name}' 注册单独日志文件: {log_filename}")

    @staticmethod
    def get_access_logger(channel: str = "http"):
        """获取访问日志专用的 logger, channel 为 http 或 rpc"""
        return logger.bind(access=True, channel=channel)


# 全局日志管理器实例
_logging_manager = LoggingManager()


def setup_logging(
    log_dir: Path,
    log_level: str = "INFO",
    enable_access_log: bool = True,
):
    """初始化日志系统 (便捷函数)"""
    _logging_manager.setup(log_dir, log_level, enable_access_log)


def register_module_logger(
    module_name: str, log_filename: str, log_level: str = "DEBUG"
):
    """为特定模块注册单独的日志文件 (便捷函数)"""
    _logging_manager.register_module_logger(module_name, log_filename, log_level)


def get_access_logger(channel: str = "http"):
    """获取绑定了 access 标记的 logger, 记录会额外写入 access.log"""
    return _logging_manager.get_access_logger(channel)
