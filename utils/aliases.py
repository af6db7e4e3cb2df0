"""
遊戲系統簡寫（別名）展開

每條規則由比對片段 (Literal / Number / Choice / Maybe)、數值範圍與展開模板組成，
依序由上而下比對，第一條在結構上相符的規則勝出。因此較具體的規則必須排在
其一般形式之前，例如 4cod8 在 4cod 之前。
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from utils.errors import DiceRangeError
from utils.logger import get_logger

logger = get_logger()

OPERATORS = "+-*/"
DIGITS = "0123456789"


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Number:
    """整數擷取，可限制位數、上下限或允許值"""
    name: str
    low: Optional[int] = None
    high: Optional[int] = None
    digits: Optional[int] = None
    allowed: Optional[Tuple[int, ...]] = None

    def check(self, value: int) -> Optional[str]:
        if self.allowed is not None and value not in self.allowed:
            return f"必須是 {', '.join(map(str, self.allowed))} 其中之一"
        if self.low is not None and value < self.low:
            return f"必須介於 {self.low} 到 {self.high}" if self.high else f"至少為 {self.low}"
        if self.high is not None and value > self.high:
            return f"必須介於 {self.low} 到 {self.high}" if self.low else f"最多為 {self.high}"
        return None


@dataclass(frozen=True)
class Choice:
    name: str
    options: Tuple[str, ...]


@dataclass(frozen=True)
class Maybe:
    """可省略的片段序列"""
    parts: Tuple["Part", ...]


Part = Union[Literal, Number, Choice, Maybe]
Template = Union[str, Callable[[Dict[str, Union[int, str, None]]], str]]


def L(text: str) -> Literal:
    return Literal(text)


def N(name: str, low: Optional[int] = None, high: Optional[int] = None, **kwargs) -> Number:
    return Number(name, low, high, **kwargs)


def C(name: str, *options: str) -> Choice:
    return Choice(name, tuple(options))


def M(*parts: Part) -> Maybe:
    return Maybe(tuple(parts))


def normalize_notation(text: str) -> str:
    """轉小寫並合併空白"""
    return " ".join(text.lower().split())


def _match_sequence(parts: Tuple[Part, ...], text: str, pos: int, captures: dict) -> Optional[int]:
    for part in parts:
        pos = _match_part(part, text, pos, captures)
        if pos is None:
            return None
    return pos


def _match_part(part: Part, text: str, pos: int, captures: dict) -> Optional[int]:
    if isinstance(part, Literal):
        return pos + len(part.text) if text.startswith(part.text, pos) else None

    if isinstance(part, Number):
        end = pos
        while end < len(text) and text[end] in DIGITS:
            if part.digits is not None and end - pos == part.digits:
                break
            end += 1
        if end == pos or (part.digits is not None and end - pos != part.digits):
            return None
        captures[part.name] = int(text[pos:end])
        return end

    if isinstance(part, Choice):
        for option in sorted(part.options, key=len, reverse=True):
            if text.startswith(option, pos):
                captures[part.name] = option
                return pos + len(option)
        return None

    trial: dict = {}
    end = _match_sequence(part.parts, text, pos, trial)
    if end is None:
        return pos
    captures.update(trial)
    return end


def _numbers(parts: Tuple[Part, ...]) -> Iterator[Number]:
    for part in parts:
        if isinstance(part, Number):
            yield part
        elif isinstance(part, Maybe):
            yield from _numbers(part.parts)


@dataclass(frozen=True)
class AliasMatch:
    rule: "AliasRule"
    captures: Dict[str, Union[int, str]]
    tail: Optional[str] = None


@dataclass(frozen=True)
class AliasRule:
    """別名規則"""
    name: str
    system: str
    pattern: Tuple[Part, ...]
    template: Template
    example: str
    accepts_tail: bool = False

    def match(self, text: str) -> Optional[AliasMatch]:
        """只做結構比對，不檢查數值範圍"""
        captures: dict = {}
        end = _match_sequence(self.pattern, text, 0, captures)
        if end is None:
            return None

        rest = text[end:].strip()
        if not rest:
            return AliasMatch(self, captures)
        if self.accepts_tail and rest[0] in OPERATORS:
            return AliasMatch(self, captures, rest)
        return None

    def validate(self, captures: Dict[str, Union[int, str]]):
        """檢查擷取到的數值是否在宣告的範圍內"""
        for number in _numbers(self.pattern):
            if number.name not in captures:
                continue
            value = captures[number.name]
            problem = number.check(value)
            if problem:
                raise DiceRangeError(f"{self.system} 的 {number.name} {problem}", token=str(value))

    def render(self, captures: Dict[str, Union[int, str]]) -> str:
        if callable(self.template):
            return self.template(captures)
        return self.template.format(**captures)


# Earthdawn 步驟表
_EARTHDAWN_STEPS = {
    1: "d4", 2: "d4", 3: "d4", 4: "d6", 5: "d8", 6: "d10", 7: "d12", 8: "2d6",
    9: "d8 d6", 10: "2d8", 11: "d10 d8", 12: "2d10", 13: "d12 d10", 14: "2d12",
    15: "d12 2d6", 16: "d12 d8 d6", 17: "d12 2d8", 18: "d12 d10 d8",
    19: "d20 2d6", 20: "d20 d8 d6", 21: "d20 d10 d6", 22: "d20 d10 d8",
    23: "d20 2d10", 24: "d20 d12 d10", 25: "d20 d12 d8 d4", 26: "d20 d12 d8 d6",
    27: "d20 d12 2d8", 28: "d20 2d10 d8", 29: "d20 d12 d10 d8", 30: "d20 d12 d10 d8",
    31: "d20 d10 2d8 d6", 32: "d20 2d10 d8 d6", 33: "d20 2d10 2d8", 34: "d20 3d10 d8",
    35: "d20 d12 2d10 d8", 36: "2d20 d10 d8 d4", 37: "2d20 d10 d8 d6",
    38: "2d20 d10 2d8", 39: "2d20 2d10 d8", 40: "2d20 d12 d10 d8",
    41: "2d20 d10 d8 2d6", 42: "2d20 d10 2d8 d6", 43: "2d20 2d10 d8 d6",
    44: "2d20 3d10 d8", 45: "2d20 3d10 d8", 46: "2d20 d12 2d10 d8",
    47: "2d20 2d10 2d8 d4", 48: "2d20 2d10 2d8 d6", 49: "2d20 2d10 3d8",
    50: "2d20 3d10 2d8",
}
_EARTHDAWN_ADJUST = {1: -2, 2: -1}


def _earthdawn(captures) -> str:
    step = captures["step"]
    dice = [die if die[0] in DIGITS else f"1{die}" for die in _EARTHDAWN_STEPS[step].split()]
    expansion = " + ".join(f"{die} ie" for die in dice)
    adjust = _EARTHDAWN_ADJUST.get(step)
    if adjust:
        expansion += f" - {-adjust}"
    return expansion


def _d6_legends(captures) -> str:
    count = captures["count"]
    if count == 1:
        return "1d6 t4f1ie6"
    return f"{count - 1}d6 t4 + 1d6 t4f1ie6"


def _hero_half(captures) -> str:
    count, kind = captures["count"], captures["kind"]
    if kind == "h":
        return "3d6 hsh"
    if count == 0:
        return f"1d3 hs{kind}"
    return f"{count}d6 hs{kind}1"


def _hero_fraction(captures) -> str:
    count, kind = captures["count"], captures["kind"]
    if kind == "n":
        return f"{count}d6 hsn"
    if kind == "h":
        return f"{count}d6 + {count}"
    return f"{count}d6 hsk1"


def _hero(captures) -> str:
    # 命中判定固定擲 3d6
    count, kind = captures.get("count", 1), captures["kind"]
    if kind == "h":
        return "3d6 hsh"
    return f"{count}d6 hs{kind}"


_A5E_DICE = {"a5e": "1d20", "+a5e": "2d20 k1", "-a5e": "2d20 kl1"}
_A5E_EXPERTISE = {1: 4, 2: 6, 3: 8}


def _a5e(captures) -> str:
    expansion = _A5E_DICE[captures["mode"]]
    if "bonus" in captures:
        expansion += f" {captures['sign']}{captures['bonus']}"
    if "expertise" in captures:
        die = _A5E_EXPERTISE.get(captures["expertise"], captures["expertise"])
        expansion += f" + 1d{die}"
    return expansion


def _wrath_glory(captures) -> str:
    token = "wng"
    if "wrath" in captures:
        token += f"w{captures['wrath']}"
    if "difficulty" in captures:
        token += f"dn{captures['difficulty']}"
    if "mode" in captures:
        token += "t"
    return f"{captures['count']}d{captures['sides']} {token}"


def _alien_push(captures) -> str:
    # 推骰：壓力值原地加一，不再次展開
    return f"{captures['count']}d6 t6 aliens{captures['stress'] + 1}"


def _forged(captures) -> str:
    if captures["count"] == 0:
        return "2d6 fitd0"
    return f"{captures['count']}d6 fitd"


def _wild_worlds(captures) -> str:
    expansion = f"{captures['count']}d6 ww"
    if "cut" in captures:
        expansion += f"c{captures['cut']}"
    return expansion


def _conan(captures) -> str:
    expansion = f"{captures.get('count', 2)}d20"
    if "target" in captures:
        expansion += f" tl{captures['target']}ds1"
    expansion += " conan"
    if "combat" in captures:
        expansion += f" + {captures['combat']}d6 cd"
    return expansion


def _marvel(captures) -> str:
    edges = captures.get("edges", 1) if "edge" in captures else 0
    troubles = captures.get("troubles", 1) if "trouble" in captures else 0
    # 優勢與劣勢互相抵銷
    net = edges - troubles
    if net > 0:
        return f"3d6 mme{net}"
    if net < 0:
        return f"3d6 mmt{-net}"
    return "3d6 mm"


def _mothership(captures) -> str:
    mode = captures.get("mode", "")
    stat = captures.get("stat", "")
    return f"{2 if mode else 1}d100 ms{stat}{mode}"


def _lasers_feelings(captures) -> str:
    return f"{captures['count']}d6 lf{captures['number']}{captures.get('mode', '')}"


ALIAS_RULES: Tuple[AliasRule, ...] = (
    AliasRule("percentile-advantage", "D%", (L("+d%"),),
              "2d10 kl1 * 10 + 1d10 - 10", "+d%", accepts_tail=True),
    AliasRule("percentile-disadvantage", "D%", (L("-d%"),),
              "2d10 k1 * 10 + 1d10 - 10", "-d%", accepts_tail=True),
    AliasRule("advantage", "D&D", (L("+d"), N("sides")),
              "2d{sides} k1", "+d20", accepts_tail=True),
    AliasRule("disadvantage", "D&D", (L("-d"), N("sides")),
              "2d{sides} kl1", "-d20", accepts_tail=True),
    AliasRule("dnd-stats", "D&D", (L("dndstats"),), "6 4d6 k3", "dndstats"),
    AliasRule("dnd-check", "D&D", (C("check", "attack", "skill", "save"),),
              "1d20", "attack +5", accepts_tail=True),
    AliasRule("a5e", "Level Up A5E",
              (C("mode", "+a5e", "-a5e", "a5e"),
               M(M(L(" ")), C("sign", "+", "-"), M(L(" ")), N("bonus")),
               M(L(" ex"), N("expertise", allowed=(1, 2, 3, 4, 6, 8, 10, 12, 20, 100)))),
              _a5e, "a5e +5 ex1", accepts_tail=True),
    AliasRule("cod-8-again", "Chronicles of Darkness", (N("count"), L("cod8")),
              "{count}d10 t8 ie8", "4cod8", accepts_tail=True),
    AliasRule("cod-9-again", "Chronicles of Darkness", (N("count"), L("cod9")),
              "{count}d10 t8 ie9", "4cod9", accepts_tail=True),
    AliasRule("cod-rote", "Chronicles of Darkness", (N("count"), L("codr")),
              "{count}d10 t8 ie10 r7", "4codr", accepts_tail=True),
    AliasRule("cod", "Chronicles of Darkness", (N("count"), L("cod")),
              "{count}d10 t8 ie10", "4cod", accepts_tail=True),
    AliasRule("wod-cancel", "World of Darkness",
              (N("count"), L("wod"), N("difficulty", 2, 10), L("c")),
              "{count}d10 f1 ie10 t{difficulty} c", "4wod8c", accepts_tail=True),
    AliasRule("wod", "World of Darkness", (N("count"), L("wod"), N("difficulty", 2, 10)),
              "{count}d10 f1 ie10 t{difficulty}", "4wod8", accepts_tail=True),
    AliasRule("daggerheart", "Daggerheart", (L("dheart"),), "2d12 dheart", "dheart",
              accepts_tail=True),
    AliasRule("dark-heresy-pool", "Dark Heresy",
              (L("dh "), N("count"), L("d"), N("sides", allowed=(10,))),
              "{count}d10 ie10 dh", "dh 4d10"),
    AliasRule("dark-heresy", "Dark Heresy", (L("dh"),), "1d10 dh", "dh", accepts_tail=True),
    AliasRule("warhammer", "Warhammer", (N("count"), L("wh"), N("target", 2, 6), L("+")),
              "{count}d6 t{target}", "3wh4+"),
    AliasRule("double-digit", "Double Digit",
              (L("dd"), N("tens", 1, 9, digits=1), N("ones", 1, 9, digits=1)),
              "1d{tens} * 10 + 1d{ones}", "dd34"),
    AliasRule("shadowrun", "Shadowrun", (L("sr"), N("count", 1, 100)),
              "{count}d6 t5 sr", "sr6", accepts_tail=True),
    AliasRule("storypath-target", "Storypath",
              (L("sp"), N("count"), L("t"), N("target", 2, 10)),
              "{count}d10 t{target} ie10", "sp4t7"),
    AliasRule("storypath", "Storypath", (L("sp"), N("count")),
              "{count}d10 t8 ie10", "sp4"),
    AliasRule("year-zero", "Year Zero", (N("count"), L("yz")), "{count}d6 t6", "6yz"),
    AliasRule("sunsails", "Sunsails: New Millennium", (L("snm"), N("count")),
              "{count}d6 ie6 t4", "snm5"),
    AliasRule("d6-system", "D6 System", (L("d6s"), N("count")),
              "{count}d6 + 1d6 ie6", "d6s4 +2", accepts_tail=True),
    AliasRule("d6-legends", "D6 Legends", (N("count", 1, 100), L("d6l")),
              _d6_legends, "8d6l", accepts_tail=True),
    AliasRule("hero-half-die", "Hero System",
              (N("count"), L(".5hs"), C("kind", "n", "k", "h")), _hero_half, "2.5hsk"),
    AliasRule("hero-fraction", "Hero System",
              (N("count"), L("hs"), C("kind", "n", "k", "h"), N("fraction", allowed=(1,))),
              _hero_fraction, "2hsk1"),
    AliasRule("hero", "Hero System", (N("count"), L("hs"), C("kind", "n", "k", "h")),
              _hero, "3hsn"),
    AliasRule("hero-single", "Hero System", (L("hs"), C("kind", "n", "k", "h")), _hero, "hsk"),
    AliasRule("exalted-target", "Exalted", (L("ex"), N("count"), L("t"), N("target", 1, 10)),
              "{count}d10 t{target}ds10", "ex5t8"),
    AliasRule("exalted", "Exalted", (L("ex"), N("count")), "{count}d10 t7ds10", "ex5"),
    AliasRule("earthdawn-4e", "Earthdawn 4e", (L("ed4e"), N("step", 1, 50)),
              _earthdawn, "ed4e15"),
    AliasRule("earthdawn", "Earthdawn", (L("ed"), N("step", 1, 50)), _earthdawn, "ed15"),
    AliasRule("godbound-pool", "Godbound",
              (C("kind", "gbs", "gb"), L(" "), N("count"), L("d"), N("sides")),
              "{count}d{sides} {kind}", "gb 3d8", accepts_tail=True),
    AliasRule("godbound", "Godbound", (C("kind", "gbs", "gb"),),
              "1d20 {kind}", "gb", accepts_tail=True),
    AliasRule("wrath-glory", "Wrath & Glory",
              (L("wng"), M(L(" w"), N("wrath", 1, 5)), M(L(" dn"), N("difficulty", 1, 30)),
               L(" "), N("count"), L("d"), N("sides", allowed=(6,)),
               M(L(" "), C("mode", "soak", "exempt", "dmg"))),
              _wrath_glory, "wng w2 dn3 4d6"),
    AliasRule("wrath-glory-single", "Wrath & Glory", (L("wng"),), "1d6 wng", "wng"),
    AliasRule("savage-worlds", "Savage Worlds",
              (L("sw"), N("sides", allowed=(4, 6, 8, 10, 12))),
              "1d{sides} ie{sides} sw", "sw8", accepts_tail=True),
    AliasRule("cyberpunk-red", "Cyberpunk Red", (L("cpr"),), "1d10 cpr", "cpr", accepts_tail=True),
    AliasRule("witcher", "The Witcher", (L("wit"),), "1d10 wit", "wit", accepts_tail=True),
    AliasRule("cypher", "Cypher System", (L("cs"), M(L(" ")), N("level", 1, 10)),
              "1d20 cs{level}", "cs 3", accepts_tail=True),
    AliasRule("alien-push", "Alien RPG",
              (L("alien"), N("count", 1, 100), L("s"), N("stress", 1, 10), L("p")),
              _alien_push, "alien4s2p"),
    AliasRule("alien-stress", "Alien RPG",
              (L("alien"), N("count", 1, 100), L("s"), N("stress", 1, 10)),
              "{count}d6 t6 aliens{stress}", "alien4s2"),
    AliasRule("alien", "Alien RPG", (L("alien"), N("count", 1, 100)), "{count}d6 alien", "alien4"),
    AliasRule("age", "AGE System", (L("age"),), "2d6 + 1d6", "age", accepts_tail=True),
    AliasRule("forged-in-the-dark", "Forged in the Dark", (L("fitd"), N("count", 0, 10)),
              _forged, "fitd3"),
    AliasRule("wild-worlds", "Wild Worlds",
              (N("count", 1, 100), L("ww"), M(L("c"), N("cut", 1, 99))), _wild_worlds, "4wwc1"),
    AliasRule("conan", "Conan",
              (L("conan"), M(N("count", 2, 5)), M(L("t"), N("target", 1, 20)),
               M(L("cd"), N("combat", 1, 100))),
              _conan, "conan3cd5", accepts_tail=True),
    AliasRule("conan-combat", "Conan", (L("cd"), M(N("count", 1, 100))),
              lambda captures: f"{captures.get('count', 1)}d6 cd", "cd4", accepts_tail=True),
    AliasRule("marvel", "Marvel Multiverse",
              (L("mm"), M(L(" "), M(N("edges", 1, 10)), C("edge", "e")),
               M(L(" "), M(N("troubles", 1, 10)), C("trouble", "t"))),
              _marvel, "mm 2e", accepts_tail=True),
    AliasRule("silhouette", "Silhouette", (L("sil"), M(N("count", 1, 10))),
              lambda captures: f"{captures.get('count', 1)}d6 sil", "sil3", accepts_tail=True),
    AliasRule("mothership", "Mothership",
              (L("ms"), M(N("stat", 1, 99)), M(C("mode", "a", "d"))), _mothership, "ms45a"),
    AliasRule("vampire-5e", "Vampire: The Masquerade 5e",
              (L("vtm"), N("pool", 1, 30), L("h"), N("hunger", 0, 5)),
              "{pool}d10 vtm5p{pool}h{hunger}", "vtm7h2"),
    AliasRule("lasers-feelings", "Lasers & Feelings",
              (N("count", 1, 3), L("lf"), N("number", 2, 5), M(C("mode", "l", "f"))),
              _lasers_feelings, "2lf4f"),
)


def find_alias(text: str, rules: Tuple[AliasRule, ...] = ALIAS_RULES) -> Optional[AliasMatch]:
    """回傳第一條結構相符的規則"""
    normalized = normalize_notation(text)
    for rule in rules:
        match = rule.match(normalized)
        if match is not None:
            return match
    return None


def expand_alias(text: str, rules: Tuple[AliasRule, ...] = ALIAS_RULES) -> str:
    """
    將遊戲系統簡寫展開為標準骰子記法，沒有相符規則時原樣返回
    """
    match = find_alias(text, rules)
    if match is None:
        return text

    match.rule.validate(match.captures)
    expansion = match.rule.render(match.captures)
    if match.tail:
        expansion = f"{expansion} {match.tail}"

    logger.debug(f"別名展開 [{match.rule.name}]: {text} -> {expansion}")
    return expansion


def describe_aliases(rules: Tuple[AliasRule, ...] = ALIAS_RULES) -> List[Tuple[str, str, str]]:
    """列出 (系統, 範例, 展開結果)，供說明文字使用"""
    return [(rule.system, rule.example, expand_alias(rule.example, rules)) for rule in rules]
