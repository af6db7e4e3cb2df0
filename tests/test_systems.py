"""Game-system variants run in the system slot of the pipeline."""

from conftest import ScriptedRandom, spec_of
from utils.roller import evaluate


def roll(text, values):
    rng = ScriptedRandom(values)
    outcome = evaluate(spec_of(text), rng)
    assert rng.values == [], "not every scripted value was used"
    return outcome


class TestWrathGlory:
    def test_icons(self):
        outcome = roll("wng 4d6", [6, 4, 5, 1])
        assert outcome.total == 4
        assert outcome.annotations["wrath"] == (6,)
        assert outcome.annotations["glory"]
        assert not outcome.annotations["complication"]

    def test_wrath_dice_and_difficulty(self):
        outcome = roll("wng w2 dn3 4d6", [1, 2, 6, 4])
        assert outcome.total == 3
        assert outcome.annotations["complication"]
        assert outcome.annotations["passed"]

    def test_soak_totals_normally(self):
        outcome = roll("wng 3d6 soak", [1, 2, 3])
        assert outcome.total == 6
        assert not outcome.is_tally

    def test_bang_soak(self):
        assert roll("wng 3d6 !soak", [1, 2, 3]).total == 6

    def test_single_wrath_die(self):
        outcome = roll("wng", [6])
        assert outcome.total == 2
        assert outcome.annotations["glory"]


class TestGodbound:
    def test_damage_chart(self):
        assert roll("gb 3d8", [1, 5, 8]).total == 3
        assert roll("gb", [10]).total == 4

    def test_straight_damage(self):
        assert roll("gbs", [10]).total == 10


class TestHeroSystem:
    def test_normal_damage(self):
        outcome = roll("3hsn", [1, 6, 3])
        assert outcome.total == 10
        assert outcome.annotations["body"] == 3
        assert outcome.annotations["stun"] == 10

    def test_killing_damage(self):
        outcome = roll("2hsk", [3, 4, 2])
        assert outcome.total == 7
        assert outcome.annotations["stun"] == 14

    def test_half_die(self):
        outcome = roll("2.5hsk", [3, 4, 2, 3])
        assert outcome.total == 9
        assert outcome.annotations["stun"] == 27
        assert any(die.role == "half" for die in outcome.dice)

    def test_to_hit(self):
        outcome = roll("3hsh", [2, 3, 4])
        assert outcome.total == 9
        assert outcome.annotations["roll_under"]

    def test_to_hit_always_rolls_three_dice(self):
        assert roll("5hsh", [1, 2, 3]).total == 6
        assert roll("hsh", [6, 6, 6]).total == 18

    def test_single_die_shorthand(self):
        outcome = roll("hsk", [5, 2])
        assert outcome.annotations["body"] == 5
        assert outcome.annotations["stun"] == 10

    def test_normal_fraction_is_ignored(self):
        outcome = roll("2hsn1", [3, 4])
        assert outcome.total == 7
        assert not any(die.role == "half" for die in outcome.dice)

    def test_to_hit_fraction_adds_count(self):
        assert roll("2hsh1", [3, 4]).total == 9


class TestDarkHeresy:
    def test_righteous_fury(self):
        outcome = roll("dh 2d10", [10, 3, 5])
        assert outcome.total == 18
        assert outcome.annotations["righteous_fury"]

    def test_no_fury(self):
        assert not roll("dh", [7]).annotations["righteous_fury"]


class TestSavageWorlds:
    def test_keeps_trait(self):
        # 特質骰 8 爆出 3，野性骰 6 爆出 2
        outcome = roll("sw8", [8, 3, 6, 2])
        assert outcome.total == 11
        assert outcome.annotations["kept"] == "trait"
        assert all(die.dropped for die in outcome.dice if die.role == "wild")

    def test_keeps_wild(self):
        outcome = roll("sw6", [2, 5])
        assert outcome.total == 5
        assert outcome.annotations["kept"] == "wild"

    def test_snake_eyes(self):
        outcome = roll("sw4", [1, 1])
        assert outcome.annotations["snake_eyes"]
        assert outcome.total == 1


class TestShadowrun:
    def test_critical_glitch(self):
        outcome = roll("sr4", [1, 1, 1, 2])
        assert outcome.annotations["glitch"]
        assert outcome.annotations["critical_glitch"]

    def test_no_glitch_at_half(self):
        outcome = roll("sr4", [1, 1, 5, 6])
        assert outcome.total == 2
        assert not outcome.annotations["glitch"]


class TestCriticalD10:
    def test_cyberpunk_bonus(self):
        outcome = roll("cpr", [10, 7])
        assert outcome.total == 17
        assert outcome.is_critical_success

    def test_cyberpunk_penalty(self):
        outcome = roll("cpr", [1, 4])
        assert outcome.total == -3
        assert outcome.is_critical_fail

    def test_cyberpunk_does_not_chain(self):
        assert roll("cpr", [10, 10]).total == 20

    def test_plain_roll(self):
        assert roll("cpr + 5", [5]).total == 10

    def test_witcher_chains(self):
        assert roll("wit", [10, 10, 3]).total == 23
        assert roll("wit", [1, 10, 4]).total == -13


class TestCypher:
    def test_success(self):
        outcome = roll("cs 3", [9])
        assert outcome.annotations["target"] == 9
        assert outcome.annotations["success"]

    def test_effects(self):
        assert roll("cs 3", [20]).annotations["major_effect"]
        assert roll("cs 3", [18]).annotations["minor_effect"]
        assert roll("cs 3", [1]).annotations["gm_intrusion"]


class TestAlien:
    def test_stress_dice_count_and_panic(self):
        outcome = roll("alien4s2", [6, 2, 3, 4, 6, 1])
        assert outcome.total == 2
        assert outcome.annotations["panic"]
        assert sum(1 for die in outcome.dice if die.role == "stress") == 2

    def test_push_adds_a_stress_die(self):
        outcome = roll("alien2s1p", [3, 3, 4, 5])
        assert outcome.annotations["stress"] == 2
        assert not outcome.annotations["panic"]
        assert outcome.total == 0

    def test_plain_pool_counts_sixes(self):
        outcome = roll("alien4", [6, 2, 6, 3])
        assert outcome.total == 2
        assert outcome.is_tally
        assert "panic" not in outcome.annotations


class TestWorldOfDarkness:
    def test_tens_explode(self):
        # 10 爆出 7，只有 10 達到難度
        outcome = roll("2wod8", [10, 3, 7])
        assert outcome.total == 1
        assert len(outcome.dice) == 3

    def test_tens_cancel_ones(self):
        outcome = roll("4wod8c", [10, 1, 8, 2, 1])
        assert outcome.successes == 2
        assert outcome.total == 1


class TestAge:
    def test_stunt_die_added(self):
        assert roll("age", [3, 4, 6]).total == 13
        assert roll("age + 2", [1, 1, 1]).total == 5


class TestForgedInTheDark:
    def test_highest_die(self):
        outcome = roll("fitd3", [2, 5, 4])
        assert outcome.total == 5
        assert outcome.annotations["result"] == "partial"
        assert len(outcome.dropped) == 2

    def test_two_sixes_is_critical(self):
        outcome = roll("fitd2", [6, 6])
        assert outcome.total == 6
        assert outcome.annotations["result"] == "critical"
        assert outcome.is_critical_success

    def test_zero_dice_takes_lowest(self):
        outcome = roll("fitd0", [6, 3])
        assert outcome.total == 3
        assert outcome.annotations["result"] == "failure"

    def test_zero_dice_never_critical(self):
        outcome = roll("fitd0", [6, 6])
        assert outcome.annotations["result"] == "success"
        assert not outcome.is_critical_success


class TestDaggerheart:
    def test_with_hope(self):
        outcome = roll("dheart", [9, 4])
        assert outcome.total == 13
        assert outcome.annotations["result"] == "with_hope"
        assert [die.role for die in sorted(outcome.dice, key=lambda die: die.index)] == ["hope", "fear"]

    def test_with_fear_and_modifier(self):
        outcome = roll("dheart + 2", [3, 8])
        assert outcome.total == 13
        assert outcome.annotations["result"] == "with_fear"

    def test_doubles_are_critical(self):
        outcome = roll("dheart", [7, 7])
        assert outcome.annotations["result"] == "critical"
        assert outcome.is_critical_success


class TestWildWorlds:
    def test_cut_removes_highest(self):
        outcome = roll("4wwc1", [6, 5, 2, 5])
        assert outcome.total == 5
        assert outcome.annotations["result"] == "conflict"
        assert outcome.annotations["twist"]
        assert [die.value for die in outcome.dropped] == [6]

    def test_triumph(self):
        outcome = roll("3ww", [1, 6, 3])
        assert outcome.total == 6
        assert outcome.annotations["result"] == "triumph"
        assert not outcome.annotations["twist"]


class TestConan:
    def test_skill_counts_complications(self):
        outcome = roll("conan3", [20, 4, 11])
        assert outcome.total == 35
        assert outcome.annotations["complications"] == 1

    def test_skill_with_target(self):
        # 1 計兩次成功，20 為併發症
        outcome = roll("conan3t12", [1, 12, 20])
        assert outcome.total == 3
        assert outcome.annotations["complications"] == 1

    def test_combat_dice(self):
        outcome = roll("cd4", [1, 2, 3, 6])
        assert outcome.total == 4
        assert outcome.annotations["effects"] == 1

    def test_skill_and_combat(self):
        assert roll("conan2cd3", [5, 9, 5, 6, 2]).total == 18


class TestMarvelMultiverse:
    def test_fantastic_counts_as_six(self):
        outcome = roll("mm", [4, 1, 3])
        assert outcome.total == 13
        assert outcome.annotations["fantastic"]

    def test_edge_rerolls_lowest(self):
        outcome = roll("mm e", [2, 5, 4, 6])
        assert outcome.total == 15
        assert outcome.annotations["edges"] == 1

    def test_trouble_rerolls_highest(self):
        assert roll("mm t", [2, 5, 4, 3]).total == 9

    def test_trouble_keeps_lower(self):
        outcome = roll("mm t", [2, 5, 4, 6])
        assert outcome.total == 11
        assert any("保留 5" in note for note in outcome.notes)

    def test_trouble_can_lose_fantastic(self):
        outcome = roll("mm t", [3, 1, 2, 4])
        assert outcome.total == 9
        assert not outcome.annotations["fantastic"]

    def test_edges_and_troubles_cancel(self):
        outcome = roll("mm e t", [2, 5, 4])
        assert outcome.total == 11


class TestSilhouette:
    def test_extra_sixes(self):
        outcome = roll("sil3", [6, 6, 2])
        assert outcome.total == 7
        assert outcome.annotations["extra_sixes"] == 1

    def test_highest_die(self):
        assert roll("sil", [4]).total == 4
        assert roll("sil3 + 1", [6, 6, 6]).total == 9


class TestMothership:
    def test_success_under_stat(self):
        outcome = roll("ms45", [50])
        assert outcome.total == 50
        assert not outcome.annotations["success"]
        assert roll("ms45", [12]).annotations["success"]

    def test_doubles_are_critical(self):
        assert roll("ms45", [33]).is_critical_success
        assert roll("ms45", [77]).is_critical_fail

    def test_hundred_reads_as_double_zero(self):
        outcome = roll("ms45", [100])
        assert outcome.total == 0
        assert outcome.is_critical_success

    def test_ninety_and_up_always_fails(self):
        assert not roll("ms95", [92]).annotations["success"]

    def test_advantage_and_disadvantage(self):
        assert roll("ms45a", [80, 12]).total == 12
        outcome = roll("ms45d", [80, 12])
        assert outcome.total == 80
        assert not outcome.annotations["success"]

    def test_without_stat(self):
        outcome = roll("ms", [55])
        assert outcome.annotations["critical"]
        assert "success" not in outcome.annotations


class TestVampire:
    def test_messy_critical(self):
        # 最後兩顆為飢渴骰，一對 10 共四次成功
        outcome = roll("vtm5h2", [10, 3, 7, 10, 1])
        assert outcome.total == 5
        assert outcome.is_critical_success
        assert outcome.annotations["messy_critical"]
        assert sum(1 for die in outcome.dice if die.role == "hunger") == 2

    def test_bestial_failure(self):
        outcome = roll("vtm3h1", [2, 4, 1])
        assert outcome.total == 0
        assert outcome.annotations["bestial_failure"]

    def test_odd_ten_counts_once(self):
        outcome = roll("vtm4h0", [10, 10, 10, 6])
        assert outcome.total == 6
        assert not outcome.annotations["messy_critical"]


class TestLasersFeelings:
    def test_exact_number_is_insight(self):
        outcome = roll("2lf4", [2, 4])
        assert outcome.total == 2
        assert outcome.annotations["result"] == "success"
        assert outcome.annotations["insight"]

    def test_feelings_roll_high(self):
        outcome = roll("3lf3f", [1, 2, 6])
        assert outcome.total == 1
        assert outcome.annotations["result"] == "mixed"

    def test_failure(self):
        assert roll("1lf2", [5]).annotations["result"] == "failure"

    def test_three_successes(self):
        outcome = roll("3lf5", [1, 2, 3])
        assert outcome.annotations["result"] == "critical"
        assert outcome.is_critical_success
