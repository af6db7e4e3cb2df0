"""Alias table and expander."""

import pytest

from utils.aliases import (
    ALIAS_RULES, AliasRule, L, N, describe_aliases, expand_alias, find_alias,
)
from utils.dice import roll_expression
from utils.errors import DiceRangeError


class TestExpand:
    @pytest.mark.parametrize("shorthand, canonical", [
        ("4cod", "4d10 t8 ie10"),
        ("4cod8", "4d10 t8 ie8"),
        ("4cod9", "4d10 t8 ie9"),
        ("4codr", "4d10 t8 ie10 r7"),
        ("4wod8", "4d10 f1 ie10 t8"),
        ("4wod8c", "4d10 f1 ie10 t8 c"),
        ("1d6l", "1d6 t4f1ie6"),
        ("8d6l", "7d6 t4 + 1d6 t4f1ie6"),
        ("a5e +5 ex1", "1d20 +5 + 1d4"),
        ("+a5e +5 ex1", "2d20 k1 +5 + 1d4"),
        ("-a5e ex3", "2d20 kl1 + 1d8"),
        ("+d20", "2d20 k1"),
        ("-d20", "2d20 kl1"),
        ("+d20 + 3", "2d20 k1 + 3"),
        ("+d%", "2d10 kl1 * 10 + 1d10 - 10"),
        ("dndstats", "6 4d6 k3"),
        ("attack +5", "1d20 +5"),
        ("save", "1d20"),
        ("sw8", "1d8 ie8 sw"),
        ("ex5", "5d10 t7ds10"),
        ("ex5t8", "5d10 t8ds10"),
        ("ed1", "1d4 ie - 2"),
        ("ed9", "1d8 ie + 1d6 ie"),
        ("ed4e8", "2d6 ie"),
        ("alien4", "4d6 alien"),
        ("alien4s2", "4d6 t6 aliens2"),
        ("alien4s2p", "4d6 t6 aliens3"),
        ("wng 4d6", "4d6 wng"),
        ("wng w2 dn3 4d6", "4d6 wngw2dn3"),
        ("wng 3d6 soak", "3d6 wngt"),
        ("2.5hsk", "2d6 hsk1"),
        ("0.5hsk", "1d3 hsk"),
        ("2hsk1", "2d6 hsk1"),
        ("2hsn1", "2d6 hsn"),
        ("2hsh1", "2d6 + 2"),
        ("2.5hsh", "3d6 hsh"),
        ("5hsh", "3d6 hsh"),
        ("3hsn", "3d6 hsn"),
        ("age", "2d6 + 1d6"),
        ("age + 2", "2d6 + 1d6 + 2"),
        ("wng", "1d6 wng"),
        ("hsn", "1d6 hsn"),
        ("hsk", "1d6 hsk"),
        ("hsh", "3d6 hsh"),
        ("fitd3", "3d6 fitd"),
        ("fitd0", "2d6 fitd0"),
        ("dheart", "2d12 dheart"),
        ("dheart + 2", "2d12 dheart + 2"),
        ("4ww", "4d6 ww"),
        ("4wwc2", "4d6 wwc2"),
        ("conan", "2d20 conan"),
        ("conan4", "4d20 conan"),
        ("conan3t12", "3d20 tl12ds1 conan"),
        ("conan3cd5", "3d20 conan + 5d6 cd"),
        ("cd", "1d6 cd"),
        ("cd4 + 3", "4d6 cd + 3"),
        ("mm", "3d6 mm"),
        ("mm e", "3d6 mme1"),
        ("mm 2e", "3d6 mme2"),
        ("mm t", "3d6 mmt1"),
        ("mm 2e 3t", "3d6 mmt1"),
        ("mm e t", "3d6 mm"),
        ("sil", "1d6 sil"),
        ("sil5", "5d6 sil"),
        ("ms", "1d100 ms"),
        ("ms45", "1d100 ms45"),
        ("msa", "2d100 msa"),
        ("ms45d", "2d100 ms45d"),
        ("vtm7h2", "7d10 vtm5p7h2"),
        ("2lf4", "2d6 lf4"),
        ("2lf4l", "2d6 lf4l"),
        ("3lf2f", "3d6 lf2f"),
        ("dd34", "1d3 * 10 + 1d4"),
        ("gb", "1d20 gb"),
        ("gbs", "1d20 gbs"),
        ("gb 3d8 + 2", "3d8 gb + 2"),
        ("cs 3", "1d20 cs3"),
        ("sr6", "6d6 t5 sr"),
        ("d6s4 +2", "4d6 + 1d6 ie6 +2"),
        ("3wh4+", "3d6 t4"),
        ("dh", "1d10 dh"),
        ("dh 4d10", "4d10 ie10 dh"),
        ("sp4", "4d10 t8 ie10"),
        ("6yz", "6d6 t6"),
        ("cpr", "1d10 cpr"),
        ("wit", "1d10 wit"),
    ])
    def test_expansion(self, shorthand, canonical):
        assert expand_alias(shorthand) == canonical

    def test_case_and_spacing_are_normalized(self):
        assert expand_alias("4COD") == "4d10 t8 ie10"
        assert expand_alias("wng   4d6") == "4d6 wng"

    @pytest.mark.parametrize("text", ["2d6 + 5", "4d6 k3", "hello", "1d20 3d6", ""])
    def test_non_alias_passes_through(self, text):
        assert expand_alias(text) == text

    def test_trailing_garbage_is_not_a_match(self):
        assert find_alias("4codx") is None
        assert expand_alias("alien4s2q") == "alien4s2q"

    def test_deterministic(self):
        assert expand_alias("ed25") == expand_alias("ed25")


class TestOrdering:
    @pytest.mark.parametrize("rule", ALIAS_RULES, ids=lambda rule: rule.name)
    def test_example_resolves_to_own_rule(self, rule):
        assert find_alias(rule.example).rule is rule

    @pytest.mark.parametrize("text, name", [
        ("4cod8", "cod-8-again"),
        ("4codr", "cod-rote"),
        ("4cod", "cod"),
        ("4wod8c", "wod-cancel"),
        ("ed4e5", "earthdawn-4e"),
        ("ed5", "earthdawn"),
        ("alien4s2p", "alien-push"),
        ("sp4t7", "storypath-target"),
        ("dheart", "daggerheart"),
        ("dh", "dark-heresy"),
        ("wng 4d6", "wrath-glory"),
        ("wng", "wrath-glory-single"),
        ("3hsk", "hero"),
        ("hsk", "hero-single"),
    ])
    def test_specific_rule_wins(self, text, name):
        assert find_alias(text).rule.name == name

    def test_first_structural_match_wins(self):
        general = AliasRule("general", "Test", (L("x"), N("count")), "{count}d6", "x3")
        shadowed = AliasRule("specific", "Test", (L("x"), N("count")), "{count}d8", "x3")
        assert expand_alias("x3", (general, shadowed)) == "3d6"
        assert expand_alias("x3", (shadowed, general)) == "3d8"


class TestCaptureBounds:
    @pytest.mark.parametrize("text", [
        "alien4s0", "alien4s11", "alien4s11p", "sw3", "sw7", "ed0", "ed51",
        "ed4e51", "4wod1", "4wod11", "dd04", "dh 4d6", "wng w6 4d6", "3wh7+",
        "fitd11", "conan1", "conan6", "cd0", "sil0", "sil11", "ms0", "ms100",
        "vtm31h1", "vtm5h6", "4lf3", "2lf1", "2lf6", "mm 11e",
    ])
    def test_out_of_range_capture(self, text):
        with pytest.raises(DiceRangeError):
            expand_alias(text)

    def test_error_names_value(self):
        with pytest.raises(DiceRangeError) as excinfo:
            expand_alias("alien3s11")
        assert excinfo.value.token == "11"
        assert "Alien RPG" in str(excinfo.value)


class TestDescribe:
    def test_lists_every_rule(self):
        listing = describe_aliases()
        assert len(listing) == len(ALIAS_RULES)
        assert ("Chronicles of Darkness", "4cod8", "4d10 t8 ie8") in listing

    def test_expansions_are_canonical_strings(self):
        for _, example, expansion in describe_aliases():
            assert expansion != example

    def test_every_example_rolls(self, seeded):
        for _, example, _ in describe_aliases():
            assert roll_expression(example, rng=seeded).outcomes
