"""
业务异常定义

服务层只抛出这里定义的异常, 由传输层(HTTP / RPC)统一转换为对应的响应格式.
数据库驱动和 Redis 的原始异常不允许穿透服务层.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """业务异常基类"""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(AppError):
    """实体不存在"""

    code = "NOT_FOUND"
    status_code = 404


class AlreadyExistsError(AppError):
    """唯一性冲突(邮箱, 角色名称等)"""

    code = "ALREADY_EXISTS"
    status_code = 409


class InvalidCredentialsError(AppError):
    """登录或修改密码时凭据错误"""

    code = "INVALID_CREDENTIALS"
    status_code = 401


class UnauthenticatedError(AppError):
    """缺少 Token, Token 无效, 过期或已撤销"""

    code = "UNAUTHENTICATED"
    status_code = 401


class ForbiddenError(AppError):
    """当前角色无权执行该操作"""

    code = "FORBIDDEN"
    status_code = 403


class ConflictError(AppError):
    """操作与当前状态冲突(删除受保护角色, 删除最后一个管理员, 非法状态流转等)"""

    code = "CONFLICT"
    status_code = 409


class UnavailableError(AppError):
    """下游存储或服务不可用(连接失败, 超时), 可重试"""

    code = "UNAVAILABLE"
    status_code = 503


class InternalError(AppError):
    """未预期的内部错误"""

    code = "INTERNAL_ERROR"
    status_code = 500


class BadRequestError(AppError):
    """请求参数在业务层面无效(如权限列表为空)"""

    code = "BAD_REQUEST"
    status_code = 400
