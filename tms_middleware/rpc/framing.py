"""
TCP 消息分帧

与网关的 TCP 传输保持一致, 每条消息格式为 `<长度>#<JSON>`.
长度按 JSON 字符串的字符数计算(UTF-16 码元), 发送时 JSON 只包含 ASCII 字符,
此时字符数与字节数相同.
"""

import codecs
import json
from typing import Any, List, Optional

# 单条消息的最大长度, 超过视为非法连接
MAX_FRAME_LENGTH = 10 * 1024 * 1024
_MAX_HEADER_DIGITS = len(str(MAX_FRAME_LENGTH))


class FramingError(Exception):
    """消息格式错误, 连接无法继续使用"""


def encode_frame(message: Any) -> bytes:
    """将消息编码为一帧"""
    payload = json.dumps(message, ensure_ascii=True, separators=(",", ":"))
    return f"{len(payload)}#{payload}".encode("ascii")


def _utf16_end(text: str, start: int, units: int) -> Optional[int]:
    """从 start 开始取 units 个 UTF-16 码元, 返回结束位置, 数据不足时返回 None"""
    if len(text) - start < units:
        return None
    count = 0
    index = start
    while count < units:
        if index >= len(text):
            return None
        count += 2 if ord(text[index]) > 0xFFFF else 1
        index += 1
    if count != units:
        raise FramingError("消息长度落在字符中间")
    return index


class FrameDecoder:
    """
    增量解码器

    每次读到数据后调用 feed(), 返回已经完整的消息, 不完整的部分留到下次.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""

    def feed(self, data: bytes) -> List[Any]:
        try:
            self._buffer += self._decoder.decode(data)
        except UnicodeDecodeError as e:
            raise FramingError("消息不是合法的 UTF-8") from e

        messages = []
        while self._buffer:
            sep = self._buffer.find("#")
            if sep == -1:
                if len(self._buffer) > _MAX_HEADER_DIGITS:
                    raise FramingError("缺少消息长度分隔符")
                break

            header = self._buffer[:sep]
            if not (header.isascii() and header.isdigit()):
                raise FramingError(f"消息长度无效: {header[:20]!r}")
            length = int(header)
            if length > MAX_FRAME_LENGTH:
                raise FramingError(f"消息过长: {length}")

            end = _utf16_end(self._buffer, sep + 1, length)
            if end is None:
                break
            payload = self._buffer[sep + 1 : end]
            self._buffer = self._buffer[end:]
            try:
                messages.append(json.loads(payload))
            except ValueError as e:
                raise FramingError("消息不是合法的 JSON") from e
        return messages
