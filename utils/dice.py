from typing import List, Optional

from models.types import FUDGE, DieResult, RollOutcome, RollSetResult, SegmentResult
from utils.config import DEFAULT_RULES, GuildConfig
from utils.parser import parse_roll_command
from utils.rng import RandomSource, create_rng
from utils.roller import evaluate


def roll_expression(expr: str, rules: GuildConfig = DEFAULT_RULES,
                    rng: Optional[RandomSource] = None) -> RollSetResult:
    """
    解析並擲出整個指令（含擲骰組與 ; 多段擲骰）

    先解析全部段落，任何錯誤都在擲骰前拋出，不會有部分結果。
    """
    segments = parse_roll_command(expr, rules)
    if rng is None:
        rng = create_rng()

    results = []
    for segment in segments:
        spec = segment.spec
        if segment.is_set:
            outcomes = tuple(evaluate(spec, rng, rules, set_index=i + 1) for i in range(segment.repeat))
        else:
            outcomes = (evaluate(spec, rng, rules),)
        results.append(SegmentResult(
            expression=spec.expression,
            outcomes=outcomes,
            label=spec.label,
            comment=spec.comment,
            is_set=segment.is_set
        ))
    return RollSetResult(segments=tuple(results))


_FUDGE_FACES = {-1: "-", 0: "0", 1: "+"}

_FLAG_TEXT = {
    "complication": "⚠️ 併發症",
    "glory": "🌟 榮耀",
    "righteous_fury": "🔥 正義之怒",
    "snake_eyes": "🐍 蛇眼",
    "glitch": "⚠️ 故障",
    "critical_glitch": "💀 嚴重故障",
    "panic": "😱 恐慌",
    "gm_intrusion": "GM 介入",
    "minor_effect": "次要效果",
    "major_effect": "主要效果",
    "straight_damage": "直接傷害",
    "roll_under": "擲低判定",
    "twist": "🔀 轉折",
    "fantastic": "Ⓜ️ Fantastic",
    "insight": "💡 洞察",
    "messy_critical": "🩸 混亂大成功",
    "bestial_failure": "🐺 野獸失敗",
    "critical": "雙數",
}

_VALUE_TEXT = {
    "icons": "圖示",
    "damage": "傷害",
    "stun": "STUN",
    "body": "BODY",
    "stun_multiplier": "STUN 倍率",
    "target": "目標",
    "trait_total": "特質骰",
    "wild_total": "野性骰",
    "stress": "壓力",
    "hope": "希望骰",
    "fear": "恐懼骰",
    "cut": "移除",
    "complications": "併發症數",
    "effects": "效果",
    "edges": "優勢",
    "troubles": "劣勢",
    "extra_sixes": "額外 6",
    "hunger": "飢渴骰",
}

_RESULT_TEXT = {
    "critical": "大成功",
    "success": "成功",
    "partial": "部分成功",
    "mixed": "勉強成功",
    "failure": "失敗",
    "with_hope": "希望",
    "with_fear": "恐懼",
    "triumph": "大獲全勝",
    "conflict": "有代價的成功",
    "disaster": "災難",
}


def format_die(die: DieResult, kind: str = "") -> str:
    """格式化單顆骰子"""
    text = _FUDGE_FACES.get(die.value, str(die.value)) if kind == FUDGE else str(die.value)
    if die.rerolled_from:
        text = f"{'→'.join(map(str, die.rerolled_from))}→{text}"
    if die.exploded:
        text += "!"
    if die.counted_success:
        text = f"**{text}**"
    if die.dropped:
        text = f"~~{text}~~"
    return text


def _format_dice(outcome: RollOutcome) -> str:
    return "[" + ", ".join(format_die(die, outcome.die_kind) for die in outcome.dice) + "]"


def _format_annotations(outcome: RollOutcome) -> List[str]:
    parts = []
    for key, value in outcome.annotations.items():
        if key in _FLAG_TEXT and value is True:
            parts.append(_FLAG_TEXT[key])
        elif key in _VALUE_TEXT:
            parts.append(f"{_VALUE_TEXT[key]} {value}")
        elif key == "result":
            parts.append(_RESULT_TEXT.get(value, value))
        elif key == "passed":
            parts.append("✅ 通過" if value else "❌ 未通過")
        elif key == "success" and "target" in outcome.annotations:
            parts.append("✅ 成功" if value else "❌ 失敗")
    return parts


def format_roll_outcome(outcome: RollOutcome) -> str:
    """格式化單次擲骰結果"""
    if outcome.is_tally:
        total = f"**{outcome.total}** 成功"
        if outcome.failures:
            total += f"，{outcome.failures} 失敗"
    else:
        total = f"**{outcome.total}**"
    if outcome.botches:
        total += f"，{outcome.botches} 大失敗"

    if outcome.simple:
        return total

    details = ""
    if not outcome.no_results:
        details = _format_dice(outcome)
        for item in outcome.tail:
            operand = _format_dice(item.outcome) if item.outcome is not None else str(item.value)
            details += f" {item.op} {operand}"
        details += " = "

    crit_info = ""
    if outcome.is_critical_success:
        crit_info = " ✨ 大成功!"
    elif outcome.is_critical_fail:
        crit_info = " 💥 大失敗!"

    extra = _format_annotations(outcome) + list(outcome.notes)
    line = f"{details}{total}{crit_info}"
    if extra:
        line += " (" + ", ".join(extra) + ")"
    if outcome.comment:
        line += f" 💬 {outcome.comment}"
    return line


def _format_segment(segment: SegmentResult) -> str:
    title = f"{segment.label}: " if segment.label else ""
    if not segment.is_set:
        return f"🎲 {title}{segment.expression} → {format_roll_outcome(segment.outcomes[0])}"

    lines = [f"🎲 {title}{segment.expression} ×{len(segment.outcomes)}:"]
    for outcome in segment.outcomes:
        lines.append(f"{outcome.set_index}. {format_roll_outcome(outcome)}")
    total = sum(outcome.total for outcome in segment.outcomes)
    lines.append(f"合計: **{total}**")
    return "\n".join(lines)


def format_roll_set_result(result: RollSetResult) -> str:
    """格式化整個指令的結果"""
    return "\n".join(_format_segment(segment) for segment in result.segments)
