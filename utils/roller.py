"""
擲骰求值

固定順序：擲出 → 重擲 → 爆骰 → 保留 / 捨棄 → 成功 / 失敗 / 大失敗計數
→ 系統變體 → 加總 → 算術尾項（含額外骰子項）。
修飾符輸入的先後順序不影響結果。
"""

from dataclasses import replace
from types import MappingProxyType
from typing import List, Optional, Tuple

from models.types import (
    AT_LEAST, FUDGE, Botch, CancelOnMax, DiceTerm, DieResult, DoubleSuccess, Drop, Explode,
    Failure, KeepHighest, KeepLowest, KeepMiddle, Reroll, RollOutcome, RollSpec, RollState,
    TailResult, TargetSuccess,
)
from utils.config import DEFAULT_RULES, GuildConfig
from utils.logger import get_logger
from utils.rng import RandomSource, roll_face
from utils.systems import apply_system_modifiers

logger = get_logger()


def _roll(term: DiceTerm, rng: RandomSource) -> int:
    if term.kind == FUDGE:
        return roll_face(rng, 1, 3) - 2
    return roll_face(rng, 1, term.sides)


def _meets(value: int, threshold: int, direction: str) -> bool:
    if direction == AT_LEAST:
        return value >= threshold
    return value <= threshold


def roll_initial(state: RollState, rng: RandomSource):
    """擲出初始骰子"""
    state.dice = [DieResult(value=_roll(state.term, rng), index=i) for i in range(state.term.count)]


def apply_rerolls(state: RollState, rng: RandomSource, rules: GuildConfig):
    reroll = state.term.find(Reroll)
    if reroll is None:
        return

    for position, die in enumerate(state.dice):
        history = []
        value = die.value
        while _meets(value, reroll.threshold, reroll.direction) and len(history) < rules.max_chain_length:
            history.append(value)
            value = _roll(state.term, rng)
            if not reroll.indefinite:
                break

        if not history:
            continue
        if len(history) == rules.max_chain_length:
            logger.debug(f"重擲鏈達到上限 {rules.max_chain_length}，停止重擲")
        state.dice[position] = replace(die, value=value, rerolled_from=tuple(history))


def apply_explosions(state: RollState, rng: RandomSource, rules: GuildConfig):
    explode = state.term.find(Explode)
    if explode is None:
        return

    for root in range(len(state.dice)):
        current = root
        chain = 0
        while state.dice[current].value >= explode.threshold and chain < rules.max_chain_length:
            parent = replace(state.dice[current], exploded=True)
            state.dice[current] = parent
            state.dice.append(DieResult(value=_roll(state.term, rng), index=state.next_index(),
                                        exploded_from=parent.index))
            chain += 1
            if not explode.indefinite:
                break
            current = len(state.dice) - 1

        if chain == rules.max_chain_length:
            logger.debug(f"爆骰鏈達到上限 {rules.max_chain_length}，停止爆骰")


def apply_selection(state: RollState):
    """依點數排名保留或捨棄，同點數以擲出順序為準"""
    term = state.term
    selector = (term.find(KeepHighest) or term.find(KeepLowest)
                or term.find(KeepMiddle) or term.find(Drop))
    if selector is None:
        return

    dice = state.dice
    ascending = sorted(range(len(dice)), key=lambda i: (dice[i].value, dice[i].index))
    total = len(ascending)
    n = min(selector.n, total)

    if isinstance(selector, KeepHighest):
        descending = sorted(range(len(dice)), key=lambda i: (-dice[i].value, dice[i].index))
        kept = set(descending[:n])
    elif isinstance(selector, KeepLowest):
        kept = set(ascending[:n])
    elif isinstance(selector, KeepMiddle):
        low = (total - n) // 2
        kept = set(ascending[low:low + n])
    else:
        kept = set(ascending[n:])

    for position, die in enumerate(dice):
        if position not in kept:
            dice[position] = replace(die, dropped=True)


def apply_counting(state: RollState):
    term = state.term
    target = term.find(TargetSuccess)
    double = term.find(DoubleSuccess)
    failure = term.find(Failure)
    botch = term.find(Botch)
    if target is None and failure is None and botch is None:
        return

    state.counting = target is not None
    for position, die in enumerate(state.dice):
        if die.dropped:
            continue
        successes = 0
        if target is not None and _meets(die.value, target.threshold, target.direction):
            successes = 2 if double is not None and _meets(die.value, double.threshold, double.direction) else 1
        state.dice[position] = replace(
            die,
            successes=successes,
            failure=failure is not None and die.value <= failure.threshold,
            botch=botch is not None and die.value <= botch.threshold,
        )

    if term.find(CancelOnMax) is not None:
        kept = state.kept()
        maxima = sum(1 for die in kept if die.value == term.sides)
        failures = sum(1 for die in kept if die.failure)
        state.cancelled = min(maxima, failures)


def _counts(state: RollState) -> Tuple[int, int, int]:
    kept = state.kept()
    successes = sum(die.successes for die in kept)
    failures = sum(1 for die in kept if die.failure) - state.cancelled
    botches = sum(1 for die in kept if die.botch)
    return successes, failures, botches


def term_total(state: RollState) -> int:
    """系統指定的總和優先，計數模式為成功數減失敗數，否則為保留骰的加總"""
    if state.total is not None:
        return state.total
    if state.counting:
        successes, failures, _ = _counts(state)
        return successes - failures
    return sum(die.points for die in state.kept())


def roll_term(term: DiceTerm, rng: RandomSource, rules: GuildConfig = DEFAULT_RULES) -> RollState:
    """對單一骰子項執行完整的修飾符流程"""
    state = RollState(term=term)
    roll_initial(state, rng)
    apply_rerolls(state, rng, rules)
    apply_explosions(state, rng, rules)
    apply_selection(state)
    apply_counting(state)
    apply_system_modifiers(state, rng, rules)
    return state


def combine(op: str, left: int, right: int, notes: Optional[List[str]] = None) -> int:
    """由左至右套用運算子，除法向零取整"""
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right

    if right == 0:
        logger.debug("除數為零，略過除法")
        if notes is not None:
            notes.append("除數為零，已略過除法")
        return left
    quotient = abs(left) // abs(right)
    return quotient if (left >= 0) == (right > 0) else -quotient


def _ordered(state: RollState, unsorted: bool) -> Tuple[DieResult, ...]:
    if unsorted:
        return tuple(sorted(state.dice, key=lambda die: die.index))
    return tuple(sorted(state.dice, key=lambda die: (-die.value, die.index)))


def _criticals(state: RollState) -> Tuple[bool, bool]:
    natural = [die.value for die in state.kept()
               if die.role == "pool" and die.exploded_from is None]
    is_d20 = state.term.sides == 20 and state.term.kind != FUDGE
    success = state.annotations.get("critical_success", False) or (is_d20 and 20 in natural)
    fail = state.annotations.get("critical_failure", False) or (is_d20 and 1 in natural)
    return success, fail


def _term_outcome(state: RollState, unsorted: bool) -> RollOutcome:
    successes, failures, botches = _counts(state)
    critical_success, critical_fail = _criticals(state)
    return RollOutcome(
        dice=_ordered(state, unsorted),
        total=term_total(state),
        expression=str(state.term),
        die_kind=state.term.kind,
        successes=successes if state.counting else None,
        failures=failures if state.counting or state.term.find(Failure) else None,
        botches=botches if state.term.find(Botch) else None,
        annotations=MappingProxyType(dict(state.annotations)),
        notes=tuple(state.notes),
        is_critical_success=critical_success,
        is_critical_fail=critical_fail,
        unsorted=unsorted,
    )


def _sum_optional(values) -> Optional[int]:
    present = [value for value in values if value is not None]
    return sum(present) if present else None


def evaluate(spec: RollSpec, rng: RandomSource, rules: GuildConfig = DEFAULT_RULES,
             set_index: Optional[int] = None) -> RollOutcome:
    """
    執行一份擲骰規格並返回不可變的結果
    """
    main = _term_outcome(roll_term(spec.dice, rng, rules), spec.unsorted)
    notes = list(main.notes)

    value = main.total
    if spec.lead is not None:
        constant, op = spec.lead
        value = combine(op, constant, value, notes)

    tail = []
    for term in spec.tail:
        if term.dice is None:
            operand, sub = term.constant, None
        else:
            sub = _term_outcome(roll_term(term.dice, rng, rules), spec.unsorted)
            operand = sub.total
            notes.extend(sub.notes)
        value = combine(term.op, value, operand, notes)
        tail.append(TailResult(op=term.op, value=operand, outcome=sub))

    outcomes = [main] + [item.outcome for item in tail if item.outcome is not None]
    return replace(
        main,
        total=value,
        expression=spec.expression,
        successes=_sum_optional(outcome.successes for outcome in outcomes),
        failures=_sum_optional(outcome.failures for outcome in outcomes),
        botches=_sum_optional(outcome.botches for outcome in outcomes),
        label=spec.label,
        comment=spec.comment,
        set_index=set_index,
        tail=tuple(tail),
        notes=tuple(notes),
        is_critical_success=any(outcome.is_critical_success for outcome in outcomes),
        is_critical_fail=any(outcome.is_critical_fail for outcome in outcomes),
        private=spec.private,
        simple=spec.simple,
        no_results=spec.no_results,
    )
