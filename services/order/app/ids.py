"""注文 ID の生成"""

import secrets
import string
import time

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 9


def generate_order_id() -> str:
    """
    `PIZZA-<ミリ秒タイムスタンプ>-<ランダム9文字>` 形式の注文 ID を返す。

    一意性は確率的（タイムスタンプ + 乱数）で、保証はしない。
    """
    millis = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"PIZZA-{millis}-{suffix}"
