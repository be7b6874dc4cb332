"""
Schema 基类
提供通用的序列化功能
"""

from typing import Any, Dict
from pydantic import BaseModel, ConfigDict


class BaseResponseModel(BaseModel):
    """
    响应模型基类

    - 支持直接从 ORM 对象构建(from_attributes)
    - to_cache() 输出可 JSON 序列化的字典(datetime -> ISO 字符串, Decimal -> 字符串),
      写入缓存后再用 model_validate 读回, 得到与数据库读取结果相同的对象
    所有响应模型应继承此类
    """

    model_config = ConfigDict(from_attributes=True)

    def to_cache(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class MessageResponse(BaseModel):
    """通用消息响应模型"""

    message: str
