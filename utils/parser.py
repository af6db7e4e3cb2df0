"""
骰子記法解析

語法：[旗標] [組數] [(標籤)] CdS [修飾符...] [+ - * / 尾項] [! 註解]，以 ; 分隔最多 4 段。
"""

import re
from typing import Callable, List, Optional, Tuple

from models.types import (
    AT_LEAST, AT_MOST, FUDGE, PERCENTILE, STANDARD, SYSTEM_MODIFIERS,
    AlienStress, Botch, CancelOnMax, ConanCombat, ConanSkill, CyberpunkRed, CypherSystem,
    Daggerheart, DarkHeresy, DiceTerm, DoubleSuccess, Drop, Explode, Failure, ForgedInTheDark,
    Godbound, HeroSystem, KeepHighest, KeepLowest, KeepMiddle, LasersFeelings, MarvelMultiverse,
    Modifier, Mothership, ParsedSegment, Reroll, RollSpec, SavageWorlds, ShadowrunGlitch,
    Silhouette, TailTerm, TargetSuccess, VampireHunger, WildWorlds, Witcher, WrathGlory,
)
from utils.aliases import OPERATORS, expand_alias, normalize_notation
from utils.config import DEFAULT_RULES, GuildConfig
from utils.errors import (
    DiceError, DiceRangeError, DiceSyntaxError, LimitExceededError,
    UnsupportedModifierCombinationError,
)

FLAGS = {"p": "private", "s": "simple", "nr": "no_results", "ul": "unsorted"}

_SET_RE = re.compile(r"^(\d+)\s+(?=[^\s+\-*/])")
_LABEL_RE = re.compile(r"^\(([^)]*)\)\s*")
_DICE_RE = re.compile(r"(\d*)d(\d+|%|f)")
_NUMBER_RE = re.compile(r"\d+")
# Wrath & Glory 的 !soak / !exempt / !dmg 是骰子記法，不是註解
_WNG_MODE_RE = re.compile(r"!\s*(soak|exempt|dmg)\b\s*(?:!\s*)?", re.IGNORECASE)


def split_segments(text: str) -> List[str]:
    """以最外層的 ; 分段（標籤括號內的 ; 不算）"""
    segments = []
    current = []
    depth = 0
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")" and depth:
            depth -= 1

        if char == ";" and depth == 0:
            segments.append("".join(current))
            current = []
        else:
            current.append(char)
    segments.append("".join(current))
    return segments


def parse_roll_command(text: str, rules: GuildConfig = DEFAULT_RULES) -> List[ParsedSegment]:
    """
    解析整個指令字串，任何一段失敗就整批失敗
    """
    if not text or not text.strip():
        raise DiceSyntaxError("表達式不能為空")

    if len(text) > rules.max_input_length:
        raise LimitExceededError(f"表達式過長 (最多 {rules.max_input_length} 個字元)")

    raw_segments = split_segments(text)
    if len(raw_segments) > rules.max_segments:
        raise LimitExceededError(f"最多只能有 {rules.max_segments} 段擲骰", token=";")

    parsed = []
    for index, raw in enumerate(raw_segments):
        try:
            parsed.append(parse_segment(raw, rules))
        except DiceError as e:
            e.with_segment(index)
            raise
    return parsed


def parse_segment(raw: str, rules: GuildConfig = DEFAULT_RULES) -> ParsedSegment:
    """解析單一段落"""
    text = raw.strip()
    if not text:
        raise DiceSyntaxError("空的擲骰段落")

    flags, text = _take_flags(text)
    repeat, text = _take_set_count(text, rules)
    label, text = _take_label(text)
    if repeat is None:
        repeat, text = _take_set_count(text, rules)
    text, comment = _take_comment(text)

    if not text:
        raise DiceSyntaxError("缺少骰子表達式")

    body = normalize_notation(expand_alias(normalize_notation(text)))

    # 別名本身可能帶有組數，例如 dndstats
    alias_repeat, body = _take_set_count(body, rules)
    if alias_repeat is not None:
        if repeat is not None:
            raise DiceSyntaxError("擲骰組不能巢狀", token=str(alias_repeat))
        repeat = alias_repeat

    dice, tail, lead = _BodyParser(body, rules).parse()
    spec = RollSpec(
        dice=dice,
        tail=tail,
        lead=lead,
        label=label,
        comment=comment,
        expression=body,
        **flags
    )
    return ParsedSegment(spec=spec, repeat=repeat or 1)


def _take_flags(text: str) -> Tuple[dict, str]:
    flags = {}
    while True:
        parts = text.split(None, 1)
        if len(parts) < 2 or parts[0].lower() not in FLAGS:
            return flags, text
        flags[FLAGS[parts[0].lower()]] = True
        text = parts[1]


def _take_set_count(text: str, rules: GuildConfig) -> Tuple[Optional[int], str]:
    match = _SET_RE.match(text)
    if not match:
        return None, text

    count = int(match.group(1))
    if not rules.min_roll_sets <= count <= rules.max_roll_sets:
        raise LimitExceededError(
            f"擲骰組數必須介於 {rules.min_roll_sets} 到 {rules.max_roll_sets}",
            token=match.group(1), position=0
        )
    return count, text[match.end():]


def _take_label(text: str) -> Tuple[Optional[str], str]:
    match = _LABEL_RE.match(text)
    if not match:
        return None, text
    return match.group(1).strip() or None, text[match.end():]


def _take_comment(text: str) -> Tuple[str, Optional[str]]:
    index = text.find("!")
    if index < 0:
        return text.strip(), None

    mode = _WNG_MODE_RE.match(text, index) if text[:3].lower() == "wng" else None
    if mode:
        body = f"{text[:index].strip()} {mode.group(1).lower()}"
        return body, text[mode.end():].strip() or None
    return text[:index].strip(), text[index + 1:].strip() or None


class _BodyParser:
    """解析已展開、已正規化的骰子主體"""

    def __init__(self, text: str, rules: GuildConfig):
        self.text = text
        self.rules = rules
        self.pos = 0
        self.dice_total = 0

    def parse(self) -> Tuple[DiceTerm, Tuple[TailTerm, ...], Optional[Tuple[int, str]]]:
        lead = self._lead()
        dice = self._dice_term()

        tail = []
        while True:
            self._skip()
            if self._at_end():
                break
            op = self._operator()
            self._skip()
            tail.append(self._operand(op))
        return dice, tuple(tail), lead

    def _skip(self):
        while self.pos < len(self.text) and self.text[self.pos] == " ":
            self.pos += 1

    def _at_end(self) -> bool:
        return self.pos >= len(self.text)

    def _token(self) -> str:
        rest = self.text[self.pos:]
        return rest.split(" ", 1)[0] if rest else ""

    def _syntax_error(self, message: str) -> DiceSyntaxError:
        return DiceSyntaxError(message, token=self._token() or None, position=self.pos)

    def _lead(self) -> Optional[Tuple[int, str]]:
        """常數開頭，例如 4 + 4d10"""
        match = _NUMBER_RE.match(self.text, self.pos)
        if not match:
            return None

        end = match.end()
        while end < len(self.text) and self.text[end] == " ":
            end += 1
        if end >= len(self.text) or self.text[end] not in OPERATORS:
            return None

        self.pos = end + 1
        self._skip()
        return int(match.group(0)), self.text[end]

    def _operator(self) -> str:
        if self.text[self.pos] not in OPERATORS:
            raise self._syntax_error("預期運算子 + - * /")
        op = self.text[self.pos]
        self.pos += 1
        return op

    def _operand(self, op: str) -> TailTerm:
        if _DICE_RE.match(self.text, self.pos):
            return TailTerm(op=op, dice=self._dice_term())

        match = _NUMBER_RE.match(self.text, self.pos)
        if not match:
            raise self._syntax_error("運算子後需要常數或骰子")

        value = int(match.group(0))
        if op == "/" and value == 0:
            raise DiceRangeError("不能除以零", token="0", position=self.pos)
        self.pos = match.end()
        return TailTerm(op=op, constant=value)

    def _dice_term(self) -> DiceTerm:
        start = self.pos
        match = _DICE_RE.match(self.text, self.pos)
        if not match:
            raise self._syntax_error("無效的骰子表達式格式")

        token = match.group(0)
        count = int(match.group(1)) if match.group(1) else 1
        raw_sides = match.group(2)
        if raw_sides == "%":
            kind, sides = PERCENTILE, 100
        elif raw_sides == "f":
            kind, sides = FUDGE, 3
        else:
            kind, sides = STANDARD, int(raw_sides)

        if count < 1:
            raise DiceRangeError("骰子數量必須至少為1", token=token, position=start)
        if count > self.rules.max_dice_count:
            raise LimitExceededError(f"骰子數量過多 (最多 {self.rules.max_dice_count})",
                                     token=token, position=start)
        if sides < 1:
            raise DiceRangeError("骰子面數必須至少為1", token=token, position=start)
        if sides > self.rules.max_dice_sides:
            raise DiceRangeError(f"骰子面數過多 (最多 {self.rules.max_dice_sides})",
                                 token=token, position=start)

        self.dice_total += count
        if self.dice_total > self.rules.max_dice_count:
            raise LimitExceededError(f"整段擲骰的骰子總數過多 (最多 {self.rules.max_dice_count})",
                                     token=token, position=start)

        self.pos = match.end()
        modifiers = self._modifiers(count, sides, kind)
        return DiceTerm(count=count, sides=sides, kind=kind, modifiers=modifiers)

    def _modifiers(self, count: int, sides: int, kind: str) -> Tuple[Modifier, ...]:
        found = []
        while True:
            self._skip()
            if self._at_end() or self.text[self.pos] in OPERATORS:
                break

            for pattern, build in _MODIFIER_TOKENS:
                match = pattern.match(self.text, self.pos)
                if match:
                    break
            else:
                raise self._syntax_error("無法辨識的修飾符")

            term = _TermContext(count, sides, kind, match.group(0), self.pos)
            built = build(match, term)
            for modifier in built if isinstance(built, tuple) else (built,):
                found.append((modifier, term))
            self.pos = match.end()

        return _check_combination(found, kind)


class _TermContext:
    """修飾符檢查時需要的骰子項資訊"""

    def __init__(self, count: int, sides: int, kind: str, token: str, position: int):
        self.count = count
        self.sides = sides
        self.kind = kind
        self.token = token
        self.position = position

    def range_error(self, message: str) -> DiceRangeError:
        return DiceRangeError(message, token=self.token, position=self.position)

    def unsupported(self, message: str) -> UnsupportedModifierCombinationError:
        return UnsupportedModifierCombinationError(message, token=self.token, position=self.position)

    def face(self, value: int, what: str) -> int:
        if not 1 <= value <= self.sides:
            raise self.range_error(f"{what}必須介於 1 到 {self.sides}")
        return value

    def require(self, sides: Tuple[int, ...], count: Optional[int] = None, system: str = ""):
        if self.kind == FUDGE or self.sides not in sides:
            faces = "/".join(f"d{s}" for s in sides)
            raise self.unsupported(f"{system} 只能用於 {faces}")
        if count is not None and self.count != count:
            raise self.unsupported(f"{system} 只能擲 {count} 顆骰子")


def _explode(match, term):
    threshold = int(match.group(2)) if match.group(2) else term.sides
    return Explode(term.face(threshold, "爆骰門檻"), indefinite=bool(match.group(1)))


def _reroll(match, term):
    direction = AT_LEAST if match.group(2) else AT_MOST
    return Reroll(term.face(int(match.group(3)), "重擲門檻"), direction, indefinite=bool(match.group(1)))


_KEEP_TYPES = {"": KeepHighest, "h": KeepHighest, "l": KeepLowest, "m": KeepMiddle}


def _keep(match, term):
    n = int(match.group(2))
    if not 1 <= n <= term.count:
        raise term.range_error(f"保留數量必須介於 1 到 {term.count}")
    return _KEEP_TYPES[match.group(1)](n)


def _drop(match, term):
    n = int(match.group(1))
    if not 1 <= n < term.count:
        raise term.range_error(f"捨棄數量必須介於 1 到 {term.count - 1}")
    return Drop(n)


def _target(match, term):
    direction = AT_MOST if match.group(1) else AT_LEAST
    threshold = term.face(int(match.group(2)), "成功門檻")
    target = TargetSuccess(threshold, direction)
    if match.group(3) is None:
        return target

    if match.group(3):
        double = int(match.group(3))
    else:
        double = term.sides if direction == AT_LEAST else 1
    if direction == AT_LEAST and not threshold <= double <= term.sides:
        raise term.range_error(f"雙倍成功門檻必須介於 {threshold} 到 {term.sides}")
    if direction == AT_MOST and not 1 <= double <= threshold:
        raise term.range_error(f"雙倍成功門檻必須介於 1 到 {threshold}")
    return target, DoubleSuccess(double, direction)


def _failure(match, term):
    return Failure(term.face(int(match.group(1)), "失敗門檻"))


def _botch(match, term):
    threshold = int(match.group(1)) if match.group(1) else 1
    return Botch(term.face(threshold, "大失敗門檻"))


def _wrath_glory(match, term):
    term.require((6,), system="Wrath & Glory")
    wrath = int(match.group(1)) if match.group(1) else 1
    if not 1 <= wrath <= min(5, term.count):
        raise term.range_error(f"憤怒骰數量必須介於 1 到 {min(5, term.count)}")
    difficulty = int(match.group(2)) if match.group(2) else None
    if difficulty is not None and difficulty < 1:
        raise term.range_error("難度必須至少為1")
    return WrathGlory(wrath, difficulty, soak=bool(match.group(3)))


def _hero(match, term):
    term.require((3, 6), system="Hero System")
    return HeroSystem(match.group(1), half_die=bool(match.group(2)))


def _savage_worlds(match, term):
    term.require((4, 6, 8, 10, 12), count=1, system="Savage Worlds")
    return SavageWorlds()


def _dark_heresy(match, term):
    term.require((10,), system="Dark Heresy")
    return DarkHeresy()


def _shadowrun(match, term):
    term.require((6,), system="Shadowrun")
    return ShadowrunGlitch()


def _cyberpunk(match, term):
    term.require((10,), count=1, system="Cyberpunk Red")
    return CyberpunkRed()


def _witcher(match, term):
    term.require((10,), count=1, system="The Witcher")
    return Witcher()


def _cypher(match, term):
    term.require((20,), count=1, system="Cypher System")
    level = int(match.group(1))
    if not 1 <= level <= 10:
        raise term.range_error("Cypher 難度等級必須介於 1 到 10")
    return CypherSystem(level)


def _alien(match, term):
    term.require((6,), system="Alien RPG")
    stress = int(match.group(1)) if match.group(1) else 0
    if match.group(1) and not 1 <= stress <= 10:
        raise term.range_error("壓力值必須介於 1 到 10")
    return AlienStress(stress)


def _forged(match, term):
    term.require((6,), system="Forged in the Dark")
    if match.group(1):
        term.require((6,), count=2, system="Forged in the Dark 零骰")
        return ForgedInTheDark(zero=True)
    return ForgedInTheDark()


def _daggerheart(match, term):
    term.require((12,), count=2, system="Daggerheart")
    return Daggerheart()


def _wild_worlds(match, term):
    term.require((6,), system="Wild Worlds")
    cut = int(match.group(1)) if match.group(1) else 0
    if match.group(1) and not 1 <= cut < term.count:
        raise term.range_error(f"移除數量必須介於 1 到 {term.count - 1}")
    return WildWorlds(cut)


def _conan_skill(match, term):
    term.require((20,), system="Conan")
    if not 2 <= term.count <= 5:
        raise term.range_error("Conan 技能檢定必須擲 2 到 5 顆 d20")
    return ConanSkill()


def _conan_combat(match, term):
    term.require((6,), system="Conan 戰鬥骰")
    return ConanCombat()


def _marvel(match, term):
    term.require((6,), count=3, system="Marvel Multiverse")
    edges = int(match.group(1) or 1) if match.group(1) is not None else 0
    troubles = int(match.group(2) or 1) if match.group(2) is not None else 0
    if not 0 <= edges <= 10 or not 0 <= troubles <= 10:
        raise term.range_error("優勢 / 劣勢數量最多為 10")
    return MarvelMultiverse(edges, troubles)


def _silhouette(match, term):
    term.require((6,), system="Silhouette")
    if not 1 <= term.count <= 10:
        raise term.range_error("Silhouette 必須擲 1 到 10 顆骰子")
    return Silhouette()


def _mothership(match, term):
    mode = match.group(2)
    term.require((100,), count=2 if mode else 1, system="Mothership")
    stat = int(match.group(1)) if match.group(1) else None
    if stat is not None and not 1 <= stat <= 99:
        raise term.range_error("Mothership 屬性值必須介於 1 到 99")
    return Mothership(stat, mode)


def _vampire(match, term):
    term.require((10,), system="Vampire: The Masquerade")
    pool, hunger = int(match.group(1)), int(match.group(2))
    if not 1 <= pool <= 30:
        raise term.range_error("骰池必須介於 1 到 30")
    if term.count != pool:
        raise term.unsupported(f"骰池 {pool} 與骰子數量 {term.count} 不符")
    if not 0 <= hunger <= min(5, pool):
        raise term.range_error(f"飢渴骰必須介於 0 到 {min(5, pool)}")
    return VampireHunger(pool, hunger)


def _lasers_feelings(match, term):
    term.require((6,), system="Lasers & Feelings")
    number = int(match.group(1))
    if not 2 <= number <= 5:
        raise term.range_error("Lasers & Feelings 數值必須介於 2 到 5")
    return LasersFeelings(number, feelings=match.group(2) == "f")


# 依序比對，系統記號必須排在單字母修飾符之前
_MODIFIER_TOKENS: Tuple[Tuple[re.Pattern, Callable], ...] = (
    (re.compile(r"wng(?:w(\d+))?(?:dn(\d+))?(t?)"), _wrath_glory),
    (re.compile(r"gbs?"), lambda match, term: Godbound(straight=match.group(0) == "gbs")),
    (re.compile(r"hs([nkh])(1?)"), _hero),
    (re.compile(r"dheart"), _daggerheart),
    (re.compile(r"dh"), _dark_heresy),
    (re.compile(r"sw"), _savage_worlds),
    (re.compile(r"sr"), _shadowrun),
    (re.compile(r"sil"), _silhouette),
    (re.compile(r"cpr"), _cyberpunk),
    (re.compile(r"wit"), _witcher),
    (re.compile(r"ww(?:c(\d+))?"), _wild_worlds),
    (re.compile(r"conan"), _conan_skill),
    (re.compile(r"cd"), _conan_combat),
    (re.compile(r"cs(\d+)"), _cypher),
    (re.compile(r"alien(?:s(\d+))?"), _alien),
    (re.compile(r"fitd(0?)"), _forged),
    (re.compile(r"mm(?:e(\d*)|t(\d*))?"), _marvel),
    (re.compile(r"ms(\d*)([ad]?)"), _mothership),
    (re.compile(r"vtm5p(\d+)h(\d+)"), _vampire),
    (re.compile(r"lf(\d+)([lf]?)"), _lasers_feelings),
    (re.compile(r"(i?)e(\d*)"), _explode),
    (re.compile(r"(i?)r(g?)(\d+)"), _reroll),
    (re.compile(r"k([hlm]?)(\d+)"), _keep),
    (re.compile(r"d(\d+)"), _drop),
    (re.compile(r"t(l?)(\d+)(?:ds(\d*))?"), _target),
    (re.compile(r"f(\d+)"), _failure),
    (re.compile(r"b(\d*)"), _botch),
    (re.compile(r"c"), lambda match, term: CancelOnMax()),
)

_CATEGORIES = {
    Explode: "explode",
    Reroll: "reroll",
    KeepHighest: "select",
    KeepLowest: "select",
    KeepMiddle: "select",
    Drop: "select",
    TargetSuccess: "target",
    DoubleSuccess: "double",
    Failure: "failure",
    Botch: "botch",
    CancelOnMax: "cancel",
}

# 自行計算成功數或總和的系統不能再加上成功 / 失敗門檻
_SELF_COUNTING = (WrathGlory, Godbound, ForgedInTheDark, Daggerheart, WildWorlds, ConanCombat,
                  MarvelMultiverse, Silhouette, Mothership, VampireHunger, LasersFeelings)


def _check_combination(found, kind: str) -> Tuple[Modifier, ...]:
    seen = {}
    for modifier, term in found:
        category = "system" if isinstance(modifier, SYSTEM_MODIFIERS) else _CATEGORIES[type(modifier)]
        if category in seen:
            raise term.unsupported("同一骰子項不能重複使用同類修飾符")
        if kind == FUDGE and category not in ("select",):
            raise term.unsupported("Fudge 骰只能搭配保留 / 捨棄")
        seen[category] = (modifier, term)

    if "cancel" in seen and "failure" not in seen:
        raise seen["cancel"][1].unsupported("抵銷 (c) 需要搭配失敗門檻 (f)")
    if "double" in seen and "target" not in seen:
        raise seen["double"][1].unsupported("雙倍成功需要搭配成功門檻")

    system = seen.get("system")
    if system and isinstance(system[0], _SELF_COUNTING):
        for category in ("target", "failure"):
            if category in seen:
                raise seen[category][1].unsupported("此系統會自行計算成功數，不能再指定門檻")

    return tuple(modifier for modifier, _ in found)
