"""
安全工具模块
- JWT Token 生成和验证
- 密码加密和验证
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from jose import JWTError, jwt
from loguru import logger
from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@lru_cache(maxsize=None)
def _password_context(rounds: int) -> CryptContext:
    """按加密轮数创建密码加密上下文(同一轮数只创建一次)"""
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def verify_password(plain_password: str, hashed_password: str, rounds: int = 10) -> bool:
    """
    验证密码

    Args:
        plain_password: 明文密码
        hashed_password: 加密后的密码
        rounds: bcrypt 加密轮数(校验时以哈希值中记录的轮数为准)

    Returns:
        bool: 密码是否正确
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return _password_context(rounds).verify(plain_password, hashed_password)
    except ValueError as e:
        # 数据库中的哈希值格式不正确
        logger.warning(f"密码哈希值无法识别: {e}")
        return False


def get_password_hash(password: str, rounds: int = 10) -> str:
    """
    加密密码

    Args:
        password: 明文密码
        rounds: bcrypt 加密轮数

    Returns:
        str: 加密后的密码
    """
    return _password_context(rounds).hash(password)


async def verify_password_async(
    plain_password: str, hashed_password: str, rounds: int = 10
) -> bool:
    """在线程池中验证密码, 避免 bcrypt 阻塞事件循环"""
    return await run_in_threadpool(verify_password, plain_password, hashed_password, rounds)


async def get_password_hash_async(password: str, rounds: int = 10) -> str:
    """在线程池中加密密码"""
    return await run_in_threadpool(get_password_hash, password, rounds)


def create_token(
    data: dict,
    secret_key: str,
    algorithm: str,
    expires_in: int,
    token_type: str = ACCESS_TOKEN_TYPE,
) -> str:
    """
    创建 JWT Token

    Args:
        data: 要编码到 Token 中的数据(用户ID, 邮箱, 角色, 权限等)
        secret_key: 签名密钥
        algorithm: 签名算法
        expires_in: 有效期(秒)
        token_type: Token 类型, access 或 refresh

    Returns:
        str: JWT Token 字符串
    """
    now = datetime.now(timezone.utc)
    to_encode = data.copy()
    to_encode.update(
        {
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
            "type": token_type,
            # 同一秒内为同一用户签发的 Token 也必须互不相同
            "jti": uuid.uuid4().hex,
        }
    )
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_token(
    token: str,
    secret_key: str,
    algorithm: str,
    token_type: Optional[str] = None,
) -> Optional[dict]:
    """
    解码并校验 JWT Token(签名和过期时间)

    Args:
        token: JWT Token 字符串
        secret_key: 签名密钥
        algorithm: 签名算法
        token_type: 期望的 Token 类型, 为空时不校验

    Returns:
        dict: 解码后的数据，如果 Token 无效则返回 None
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError as e:
        logger.debug(f"Token 解码失败: {e}")
        return None

    # 验证 Token 类型
    if token_type is not None and payload.get("type") != token_type:
        logger.debug(
            f"Token 类型不匹配: 期望 {token_type}, 实际 {payload.get('type')}"
        )
        return None

    return payload


def hash_token(token: str) -> str:
    """
    对 Token 进行哈希处理(用于生成缓存 Key)

    Args:
        token: Token 字符串

    Returns:
        str: Token 的 SHA256 哈希值
    """
    return hashlib.sha256(token.encode()).hexdigest()
