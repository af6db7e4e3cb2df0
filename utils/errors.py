from typing import Optional


class DiceError(ValueError):
    """骰子表達式錯誤基底類別"""

    kind = "錯誤"

    def __init__(self, message: str, token: Optional[str] = None,
                 position: Optional[int] = None, segment: Optional[int] = None):
        self.message = message
        self.token = token
        self.position = position
        self.segment = segment
        super().__init__(message)

    def with_segment(self, segment: int) -> "DiceError":
        """標記錯誤所在的段落"""
        if self.segment is None:
            self.segment = segment
        return self

    def __str__(self) -> str:
        details = []
        if self.segment is not None:
            details.append(f"第 {self.segment + 1} 段")
        if self.position is not None:
            details.append(f"位置 {self.position}")
        if self.token:
            details.append(f"'{self.token}'")

        if details:
            return f"{self.kind}: {self.message} ({', '.join(details)})"
        return f"{self.kind}: {self.message}"


class DiceSyntaxError(DiceError):
    """無法解析的記號"""
    kind = "語法錯誤"


class DiceRangeError(DiceError):
    """數值超出允許範圍"""
    kind = "範圍錯誤"


class LimitExceededError(DiceRangeError):
    """超過段落、骰子數量或擲骰組數的上限"""
    kind = "超出上限"


class UnsupportedModifierCombinationError(DiceError):
    """互相衝突的修飾符組合"""
    kind = "不支援的修飾符組合"
