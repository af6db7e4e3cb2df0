from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


# 骰子種類
STANDARD = "standard"
FUDGE = "fudge"
PERCENTILE = "percentile"

# 比較方向
AT_LEAST = ">="
AT_MOST = "<="


@dataclass(frozen=True)
class Explode:
    """爆骰：點數達到門檻時追加一顆骰子"""
    threshold: int
    indefinite: bool = False


@dataclass(frozen=True)
class Reroll:
    """重擲：點數符合條件時以新值取代"""
    threshold: int
    direction: str = AT_MOST
    indefinite: bool = False


@dataclass(frozen=True)
class KeepHighest:
    n: int


@dataclass(frozen=True)
class KeepLowest:
    n: int


@dataclass(frozen=True)
class KeepMiddle:
    n: int


@dataclass(frozen=True)
class Drop:
    """捨棄最低的 n 顆"""
    n: int


@dataclass(frozen=True)
class TargetSuccess:
    threshold: int
    direction: str = AT_LEAST


@dataclass(frozen=True)
class DoubleSuccess:
    """達到門檻的骰子計為兩次成功"""
    threshold: int
    direction: str = AT_LEAST


@dataclass(frozen=True)
class Failure:
    threshold: int


@dataclass(frozen=True)
class Botch:
    threshold: int = 1


@dataclass(frozen=True)
class CancelOnMax:
    """最大點數抵銷失敗"""


# 系統專用變體

@dataclass(frozen=True)
class WrathGlory:
    wrath_dice: int = 1
    difficulty: Optional[int] = None
    soak: bool = False


@dataclass(frozen=True)
class Godbound:
    straight: bool = False


@dataclass(frozen=True)
class HeroSystem:
    kind: str  # "n" 普通傷害, "k" 致命傷害, "h" 命中
    half_die: bool = False


@dataclass(frozen=True)
class DarkHeresy:
    pass


@dataclass(frozen=True)
class SavageWorlds:
    pass


@dataclass(frozen=True)
class ShadowrunGlitch:
    pass


@dataclass(frozen=True)
class CyberpunkRed:
    pass


@dataclass(frozen=True)
class Witcher:
    pass


@dataclass(frozen=True)
class CypherSystem:
    level: int


@dataclass(frozen=True)
class AlienStress:
    stress: int = 0  # 0 為不含壓力骰的一般擲骰


@dataclass(frozen=True)
class ForgedInTheDark:
    """取最高的一顆；零骰時擲 2d6 取最低"""
    zero: bool = False


@dataclass(frozen=True)
class Daggerheart:
    """2d12：第一顆為希望骰，第二顆為恐懼骰"""


@dataclass(frozen=True)
class WildWorlds:
    cut: int = 0  # 先移除最高的幾顆


@dataclass(frozen=True)
class ConanSkill:
    pass


@dataclass(frozen=True)
class ConanCombat:
    pass


@dataclass(frozen=True)
class MarvelMultiverse:
    edges: int = 0
    troubles: int = 0


@dataclass(frozen=True)
class Silhouette:
    pass


@dataclass(frozen=True)
class Mothership:
    stat: Optional[int] = None
    mode: str = ""  # "a" 優勢, "d" 劣勢


@dataclass(frozen=True)
class VampireHunger:
    pool: int
    hunger: int


@dataclass(frozen=True)
class LasersFeelings:
    number: int
    feelings: bool = False


SelectionModifier = Union[KeepHighest, KeepLowest, KeepMiddle, Drop]
SystemModifier = Union[WrathGlory, Godbound, HeroSystem, DarkHeresy, SavageWorlds,
                       ShadowrunGlitch, CyberpunkRed, Witcher, CypherSystem, AlienStress,
                       ForgedInTheDark, Daggerheart, WildWorlds, ConanSkill, ConanCombat,
                       MarvelMultiverse, Silhouette, Mothership, VampireHunger, LasersFeelings]
Modifier = Union[Explode, Reroll, SelectionModifier, TargetSuccess, DoubleSuccess,
                 Failure, Botch, CancelOnMax, SystemModifier]

SYSTEM_MODIFIERS = (WrathGlory, Godbound, HeroSystem, DarkHeresy, SavageWorlds,
                    ShadowrunGlitch, CyberpunkRed, Witcher, CypherSystem, AlienStress,
                    ForgedInTheDark, Daggerheart, WildWorlds, ConanSkill, ConanCombat,
                    MarvelMultiverse, Silhouette, Mothership, VampireHunger, LasersFeelings)


@dataclass(frozen=True)
class DiceTerm:
    """單一骰子項，例如 4d6 k3"""
    count: int
    sides: int
    kind: str = STANDARD
    modifiers: Tuple[Modifier, ...] = ()

    def find(self, modifier_type) -> Optional[Modifier]:
        """取得指定類型的修飾符"""
        for modifier in self.modifiers:
            if isinstance(modifier, modifier_type):
                return modifier
        return None

    @property
    def face_range(self) -> Tuple[int, int]:
        if self.kind == FUDGE:
            return -1, 1
        return 1, self.sides

    def __str__(self) -> str:
        if self.kind == FUDGE:
            return f"{self.count}dF"
        if self.kind == PERCENTILE:
            return f"{self.count}d%"
        return f"{self.count}d{self.sides}"


@dataclass(frozen=True)
class TailTerm:
    """算術尾項：常數或額外的骰子項"""
    op: str
    constant: Optional[int] = None
    dice: Optional[DiceTerm] = None


@dataclass(frozen=True)
class RollSpec:
    """已驗證的擲骰規格"""
    dice: DiceTerm
    tail: Tuple[TailTerm, ...] = ()
    lead: Optional[Tuple[int, str]] = None  # 例如 "200 / 2d4" 的 (200, "/")
    label: Optional[str] = None
    comment: Optional[str] = None
    private: bool = False
    simple: bool = False
    no_results: bool = False
    unsorted: bool = False
    expression: str = ""


@dataclass(frozen=True)
class ParsedSegment:
    """一個以 ; 分隔的段落"""
    spec: RollSpec
    repeat: int = 1

    @property
    def is_set(self) -> bool:
        return self.repeat > 1


@dataclass(frozen=True)
class DieResult:
    """單顆骰子結果"""
    value: int
    index: int  # 擲出順序
    exploded: bool = False
    exploded_from: Optional[int] = None
    rerolled_from: Tuple[int, ...] = ()
    dropped: bool = False
    successes: int = 0
    failure: bool = False
    botch: bool = False
    role: str = "pool"  # pool, wild, wrath, stress, half, bonus, penalty
    score: Optional[int] = None  # 查表或正負調整後的計分值

    @property
    def points(self) -> int:
        return self.value if self.score is None else self.score

    @property
    def counted_success(self) -> bool:
        return self.successes > 0


@dataclass
class RollState:
    """求值過程中的可變骰池"""
    term: DiceTerm
    dice: List[DieResult] = field(default_factory=list)
    counting: bool = False
    cancelled: int = 0
    annotations: Dict[str, Any] = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)
    total: Optional[int] = None  # 系統自行決定的總和

    def next_index(self) -> int:
        return len(self.dice)

    def kept(self) -> List[DieResult]:
        return [die for die in self.dice if not die.dropped]


@dataclass(frozen=True)
class TailResult:
    """算術尾項的結果"""
    op: str
    value: int
    outcome: Optional["RollOutcome"] = None


@dataclass(frozen=True)
class RollOutcome:
    """一次擲骰規格的求值結果"""
    dice: Tuple[DieResult, ...]
    total: int
    expression: str = ""
    die_kind: str = STANDARD
    successes: Optional[int] = None
    failures: Optional[int] = None
    botches: Optional[int] = None
    label: Optional[str] = None
    comment: Optional[str] = None
    set_index: Optional[int] = None
    tail: Tuple[TailResult, ...] = ()
    annotations: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    notes: Tuple[str, ...] = ()
    is_critical_success: bool = False
    is_critical_fail: bool = False
    private: bool = False
    simple: bool = False
    no_results: bool = False
    unsorted: bool = False

    @property
    def is_tally(self) -> bool:
        return self.successes is not None

    @property
    def kept(self) -> Tuple[DieResult, ...]:
        return tuple(die for die in self.dice if not die.dropped)

    @property
    def dropped(self) -> Tuple[DieResult, ...]:
        return tuple(die for die in self.dice if die.dropped)


@dataclass(frozen=True)
class SegmentResult:
    """單一段落的結果（可能是一組擲骰）"""
    expression: str
    outcomes: Tuple[RollOutcome, ...]
    label: Optional[str] = None
    comment: Optional[str] = None
    is_set: bool = False


@dataclass(frozen=True)
class RollSetResult:
    """整個指令的結果"""
    segments: Tuple[SegmentResult, ...]

    @property
    def outcomes(self) -> Tuple[RollOutcome, ...]:
        return tuple(outcome for segment in self.segments for outcome in segment.outcomes)

    @property
    def is_multi(self) -> bool:
        return len(self.segments) > 1

    @property
    def private(self) -> bool:
        return any(outcome.private for outcome in self.outcomes)
