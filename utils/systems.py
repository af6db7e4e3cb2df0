"""
遊戲系統專用變體

每個變體都是作用在骰池上的獨立函數，固定在保留 / 捨棄與成功計數之後、
最終加總之前執行。
"""

from dataclasses import replace
from typing import Callable, Dict

from models.types import (
    AT_LEAST, AlienStress, ConanCombat, ConanSkill, CyberpunkRed, CypherSystem, Daggerheart,
    DarkHeresy, DieResult, ForgedInTheDark, Godbound, HeroSystem, LasersFeelings,
    MarvelMultiverse, Mothership, RollState, SavageWorlds, ShadowrunGlitch, Silhouette,
    SYSTEM_MODIFIERS, TargetSuccess, VampireHunger, WildWorlds, Witcher, WrathGlory,
)
from utils.config import GuildConfig
from utils.logger import get_logger
from utils.rng import RandomSource, roll_face

logger = get_logger()


def _append(state: RollState, value: int, **flags) -> DieResult:
    die = DieResult(value=value, index=state.next_index(), **flags)
    state.dice.append(die)
    return die


def _mark_exploded(state: RollState, index: int):
    for position, die in enumerate(state.dice):
        if die.index == index:
            state.dice[position] = replace(die, exploded=True)
            return


def _wrath_icons(value: int) -> int:
    if value == 6:
        return 2
    if value >= 4:
        return 1
    return 0


def wrath_glory(state: RollState, modifier: WrathGlory, rng: RandomSource, rules: GuildConfig):
    """Wrath & Glory：前 N 顆為憤怒骰，4-5 為一個圖示，6 為兩個"""
    originals = [die.index for die in state.dice if die.exploded_from is None]
    wrath_indices = set(originals[:modifier.wrath_dice])

    for position, die in enumerate(state.dice):
        role = "wrath" if die.index in wrath_indices else die.role
        icons = 0 if die.dropped or modifier.soak else _wrath_icons(die.value)
        state.dice[position] = replace(die, role=role, successes=icons)

    wrath = tuple(die.value for die in state.dice if die.role == "wrath")
    state.annotations["wrath"] = wrath
    state.annotations["complication"] = 1 in wrath
    state.annotations["glory"] = 6 in wrath

    kept = state.kept()
    if modifier.soak:
        result = sum(die.value for die in kept)
    else:
        state.counting = True
        result = sum(die.successes for die in kept)
        state.annotations["icons"] = result
        state.annotations["exalted_icons"] = sum(1 for die in kept if die.value == 6)

    if modifier.difficulty is not None:
        state.annotations["difficulty"] = modifier.difficulty
        state.annotations["passed"] = result >= modifier.difficulty


def _godbound_chart(value: int) -> int:
    if value <= 1:
        return 0
    if value <= 5:
        return 1
    if value <= 9:
        return 2
    return 4


def godbound(state: RollState, modifier: Godbound, rng: RandomSource, rules: GuildConfig):
    """Godbound 傷害表：每顆骰子依點數換算傷害"""
    if modifier.straight:
        state.annotations["straight_damage"] = True
        return

    for position, die in enumerate(state.dice):
        if not die.dropped:
            state.dice[position] = replace(die, score=_godbound_chart(die.value))
    state.annotations["damage"] = sum(die.points for die in state.kept())


def _hero_body(die: DieResult) -> int:
    if die.value == 1:
        return 0
    if die.role == "half" or die.value < 6:
        return 1
    return 2


def hero_system(state: RollState, modifier: HeroSystem, rng: RandomSource, rules: GuildConfig):
    if modifier.half_die:
        _append(state, roll_face(rng, 1, 3), role="half")

    kept = state.kept()
    rolled = sum(die.value for die in kept)
    if modifier.kind == "n":
        state.annotations["stun"] = rolled
        state.annotations["body"] = sum(_hero_body(die) for die in kept)
    elif modifier.kind == "k":
        multiplier = roll_face(rng, 1, 3)
        state.annotations["body"] = rolled
        state.annotations["stun_multiplier"] = multiplier
        state.annotations["stun"] = rolled * multiplier
    else:
        state.annotations["roll_under"] = True


def dark_heresy(state: RollState, modifier: DarkHeresy, rng: RandomSource, rules: GuildConfig):
    fury = any(die.value == 10 and die.exploded_from is None for die in state.kept())
    state.annotations["righteous_fury"] = fury
    if fury:
        state.notes.append("Righteous Fury!")


def savage_worlds(state: RollState, modifier: SavageWorlds, rng: RandomSource, rules: GuildConfig):
    """特質骰與野性骰各自爆骰，取較高者"""
    trait = list(state.dice)

    wild = [_append(state, roll_face(rng, 1, 6), role="wild")]
    while wild[-1].value == 6 and len(wild) <= rules.max_chain_length:
        _mark_exploded(state, wild[-1].index)
        wild.append(_append(state, roll_face(rng, 1, 6), role="wild", exploded_from=wild[-1].index))

    trait_total = sum(die.value for die in trait)
    wild_total = sum(die.value for die in wild)
    keep_wild = wild_total > trait_total
    for position, die in enumerate(state.dice):
        if (die.role == "wild") != keep_wild:
            state.dice[position] = replace(die, dropped=True)

    state.annotations["trait_total"] = trait_total
    state.annotations["wild_total"] = wild_total
    state.annotations["kept"] = "wild" if keep_wild else "trait"
    state.annotations["snake_eyes"] = trait[0].value == 1 and wild[0].value == 1


def shadowrun(state: RollState, modifier: ShadowrunGlitch, rng: RandomSource, rules: GuildConfig):
    kept = state.kept()
    ones = sum(1 for die in kept if die.value == 1)
    hits = sum(die.successes for die in kept)
    glitch = ones > len(kept) // 2
    state.annotations["glitch"] = glitch
    state.annotations["critical_glitch"] = glitch and hits == 0


def _critical_d10(state: RollState, rules: GuildConfig, rng: RandomSource, chained: bool):
    base = state.dice[0]
    if base.value not in (1, 10):
        return

    bonus = base.value == 10
    role = "bonus" if bonus else "penalty"
    state.annotations["critical_success" if bonus else "critical_failure"] = True

    parent = base.index
    for _ in range(rules.max_chain_length if chained else 1):
        _mark_exploded(state, parent)
        value = roll_face(rng, 1, 10)
        die = _append(state, value, role=role, exploded_from=parent, score=value if bonus else -value)
        parent = die.index
        if value != 10:
            break


def cyberpunk_red(state: RollState, modifier: CyberpunkRed, rng: RandomSource, rules: GuildConfig):
    _critical_d10(state, rules, rng, chained=False)


def witcher(state: RollState, modifier: Witcher, rng: RandomSource, rules: GuildConfig):
    _critical_d10(state, rules, rng, chained=True)


def cypher(state: RollState, modifier: CypherSystem, rng: RandomSource, rules: GuildConfig):
    value = state.dice[0].value
    target = modifier.level * 3
    state.annotations["target"] = target
    state.annotations["success"] = value >= target
    if value == 1:
        state.annotations["gm_intrusion"] = True
    elif value == 20:
        state.annotations["major_effect"] = True
    elif value >= 17:
        state.annotations["minor_effect"] = True


def _hit(value: int, target: TargetSuccess) -> bool:
    if target.direction == AT_LEAST:
        return value >= target.threshold
    return value <= target.threshold


def alien_stress(state: RollState, modifier: AlienStress, rng: RandomSource, rules: GuildConfig):
    """一般骰擲出 6 為成功；壓力骰同樣計算成功，任何一顆擲出 1 即恐慌"""
    target = state.term.find(TargetSuccess)
    if target is None:
        target = TargetSuccess(6, AT_LEAST)
        for position, die in enumerate(state.dice):
            if not die.dropped:
                state.dice[position] = replace(die, successes=1 if _hit(die.value, target) else 0)

    stress = []
    for _ in range(modifier.stress):
        value = roll_face(rng, 1, 6)
        stress.append(_append(state, value, role="stress", successes=1 if _hit(value, target) else 0))

    state.counting = True
    if modifier.stress:
        state.annotations["stress"] = modifier.stress
        state.annotations["panic"] = any(die.value == 1 for die in stress)


def _keep_only(state: RollState, position: int):
    for other, die in enumerate(state.dice):
        if other != position and not die.dropped:
            state.dice[other] = replace(die, dropped=True)


def _kept_positions(state: RollState):
    return [position for position, die in enumerate(state.dice) if not die.dropped]


def forged_in_the_dark(state: RollState, modifier: ForgedInTheDark, rng: RandomSource,
                       rules: GuildConfig):
    """取最高的一顆決定結果，零骰時取最低且不會大成功"""
    positions = _kept_positions(state)
    pick = min if modifier.zero else max
    chosen = pick(positions, key=lambda position: state.dice[position].value)
    sixes = sum(1 for position in positions if state.dice[position].value == 6)
    value = state.dice[chosen].value
    _keep_only(state, chosen)

    if not modifier.zero and sixes >= 2:
        result = "critical"
        state.annotations["critical_success"] = True
    elif value == 6:
        result = "success"
    elif value >= 4:
        result = "partial"
    else:
        result = "failure"
    state.annotations["result"] = result


def daggerheart(state: RollState, modifier: Daggerheart, rng: RandomSource, rules: GuildConfig):
    hope, fear = state.dice[0], state.dice[1]
    state.dice[0] = replace(hope, role="hope")
    state.dice[1] = replace(fear, role="fear")

    state.annotations["hope"] = hope.value
    state.annotations["fear"] = fear.value
    if hope.value == fear.value:
        state.annotations["critical_success"] = True
        state.annotations["result"] = "critical"
    else:
        state.annotations["result"] = "with_hope" if hope.value > fear.value else "with_fear"


def wild_worlds(state: RollState, modifier: WildWorlds, rng: RandomSource, rules: GuildConfig):
    """先移除最高的幾顆 (cut)，剩下的最高一顆決定結果，點數重複為轉折"""
    positions = sorted(_kept_positions(state),
                       key=lambda position: (-state.dice[position].value, state.dice[position].index))
    for position in positions[:modifier.cut]:
        state.dice[position] = replace(state.dice[position], dropped=True)

    values = [die.value for die in state.kept()]
    highest = max(values, default=0)
    state.total = highest
    if modifier.cut:
        state.annotations["cut"] = modifier.cut
    if highest == 6:
        state.annotations["result"] = "triumph"
    elif highest >= 4:
        state.annotations["result"] = "conflict"
    else:
        state.annotations["result"] = "disaster"
    state.annotations["twist"] = len(set(values)) < len(values)


def conan_skill(state: RollState, modifier: ConanSkill, rng: RandomSource, rules: GuildConfig):
    """每顆 20 都是一次併發症"""
    state.annotations["complications"] = sum(1 for die in state.kept() if die.value == 20)


_CONAN_COMBAT = {1: 1, 2: 2, 3: 0, 4: 0, 5: 1, 6: 1}


def conan_combat(state: RollState, modifier: ConanCombat, rng: RandomSource, rules: GuildConfig):
    """戰鬥骰：1→1、2→2、3-4→0、5-6→1 並觸發效果"""
    for position, die in enumerate(state.dice):
        if not die.dropped:
            state.dice[position] = replace(die, score=_CONAN_COMBAT[die.value])
    state.annotations["effects"] = sum(1 for die in state.kept() if die.value >= 5)


def _marvel_score(die: DieResult) -> DieResult:
    return replace(die, score=6 if die.role == "marvel" and die.value == 1 else None)


def marvel_multiverse(state: RollState, modifier: MarvelMultiverse, rng: RandomSource,
                      rules: GuildConfig):
    """中間為 Marvel 骰，擲出 1 (M) 計為 6；優勢重擲最低取高，劣勢重擲最高取低"""
    state.dice[1] = _marvel_score(replace(state.dice[1], role="marvel"))

    net = modifier.edges - modifier.troubles
    label = "優勢" if net > 0 else "劣勢"
    for _ in range(abs(net)):
        positions = _kept_positions(state)
        pick = min if net > 0 else max
        position = pick(positions, key=lambda i: state.dice[i].points)
        die = state.dice[position]
        value = roll_face(rng, 1, 6)
        candidate = _marvel_score(replace(die, value=value, rerolled_from=die.rerolled_from + (die.value,)))
        better = candidate.points > die.points if net > 0 else candidate.points < die.points
        if better:
            state.dice[position] = candidate
            state.notes.append(f"{label}重擲 {die.value}→{value}")
        else:
            state.notes.append(f"{label}重擲 {die.value}→{value}，保留 {die.value}")

    if net > 0:
        state.annotations["edges"] = net
    elif net < 0:
        state.annotations["troubles"] = -net
    state.annotations["fantastic"] = state.dice[1].value == 1


def silhouette(state: RollState, modifier: Silhouette, rng: RandomSource, rules: GuildConfig):
    """取最高一顆，每多一顆 6 再加一"""
    values = [die.value for die in state.kept()]
    extra = max(values.count(6) - 1, 0)
    state.total = max(values, default=0) + extra
    if extra:
        state.annotations["extra_sixes"] = extra


def mothership(state: RollState, modifier: Mothership, rng: RandomSource, rules: GuildConfig):
    """
    d100 以 00-99 計分，低於屬性值為成功，90 以上必定失敗
    兩位數相同 (00, 11 ... 99) 為大成功或大失敗
    """
    for position, die in enumerate(state.dice):
        state.dice[position] = replace(die, score=die.value % 100)

    if modifier.mode:
        pick = min if modifier.mode == "a" else max
        _keep_only(state, pick(_kept_positions(state), key=lambda i: state.dice[i].score))

    score = state.kept()[0].score
    critical = score % 11 == 0
    if modifier.stat is None:
        state.annotations["critical"] = critical
        return

    success = score < modifier.stat and score < 90
    state.annotations["target"] = modifier.stat
    state.annotations["success"] = success
    if critical:
        state.annotations["critical_success" if success else "critical_failure"] = True


def vampire_hunger(state: RollState, modifier: VampireHunger, rng: RandomSource,
                   rules: GuildConfig):
    """
    VtM5：6 以上為成功，每一對 10 共計四次成功
    最後 hunger 顆為飢渴骰，決定混亂大成功與野獸失敗
    """
    originals = [die.index for die in state.dice if die.exploded_from is None]
    hunger = set(originals[len(originals) - modifier.hunger:]) if modifier.hunger else set()

    paired = 2 * (sum(1 for die in state.kept() if die.value == 10) // 2)
    for position, die in enumerate(state.dice):
        role = "hunger" if die.index in hunger else die.role
        successes = 0
        if not die.dropped and die.value >= 6:
            successes = 1
            if die.value == 10 and paired:
                successes = 2
                paired -= 1
        state.dice[position] = replace(die, role=role, successes=successes)

    state.counting = True
    kept = state.kept()
    critical = sum(1 for die in kept if die.successes == 2) > 0
    hunger_faces = [die.value for die in kept if die.role == "hunger"]
    state.annotations["hunger"] = modifier.hunger
    if critical:
        state.annotations["critical_success"] = True
        state.annotations["messy_critical"] = 10 in hunger_faces
    elif sum(die.successes for die in kept) == 0 and 1 in hunger_faces:
        state.annotations["bestial_failure"] = True


_LASERS_FEELINGS_RESULTS = {0: "failure", 1: "mixed", 2: "success"}


def lasers_feelings(state: RollState, modifier: LasersFeelings, rng: RandomSource,
                    rules: GuildConfig):
    """Lasers 擲低於數值、Feelings 擲高於數值；恰好等於也算成功並獲得洞察"""
    insight = False
    for position, die in enumerate(state.dice):
        if die.dropped:
            continue
        if die.value == modifier.number:
            hit = insight = True
        elif modifier.feelings:
            hit = die.value > modifier.number
        else:
            hit = die.value < modifier.number
        state.dice[position] = replace(die, successes=1 if hit else 0)

    state.counting = True
    successes = sum(die.successes for die in state.kept())
    state.annotations["result"] = _LASERS_FEELINGS_RESULTS.get(successes, "critical")
    state.annotations["insight"] = insight
    if successes >= 3:
        state.annotations["critical_success"] = True


SYSTEM_HANDLERS: Dict[type, Callable] = {
    WrathGlory: wrath_glory,
    Godbound: godbound,
    HeroSystem: hero_system,
    DarkHeresy: dark_heresy,
    SavageWorlds: savage_worlds,
    ShadowrunGlitch: shadowrun,
    CyberpunkRed: cyberpunk_red,
    Witcher: witcher,
    CypherSystem: cypher,
    AlienStress: alien_stress,
    ForgedInTheDark: forged_in_the_dark,
    Daggerheart: daggerheart,
    WildWorlds: wild_worlds,
    ConanSkill: conan_skill,
    ConanCombat: conan_combat,
    MarvelMultiverse: marvel_multiverse,
    Silhouette: silhouette,
    Mothership: mothership,
    VampireHunger: vampire_hunger,
    LasersFeelings: lasers_feelings,
}


def apply_system_modifiers(state: RollState, rng: RandomSource, rules: GuildConfig):
    """在固定的系統變體階段執行該骰子項的系統修飾符"""
    for modifier in state.term.modifiers:
        if isinstance(modifier, SYSTEM_MODIFIERS):
            logger.debug(f"套用系統變體 {type(modifier).__name__}")
            SYSTEM_HANDLERS[type(modifier)](state, modifier, rng, rules)
