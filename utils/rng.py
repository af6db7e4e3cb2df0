import random
from typing import Optional, Protocol


class RandomSource(Protocol):
    """求值器唯一需要的亂數介面"""

    def randint(self, a: int, b: int) -> int:
        ...


def create_rng(seed: Optional[int] = None) -> random.Random:
    """為每次指令建立獨立的亂數來源（不動到全域 random 狀態）"""
    return random.Random(seed)


def roll_face(rng: RandomSource, low: int, high: int) -> int:
    """擲單個骰子"""
    return rng.randint(low, high)
