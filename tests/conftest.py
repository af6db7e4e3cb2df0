"""共用測試工具"""

import random

import pytest

from utils.parser import parse_segment


class ScriptedRandom(random.Random):
    """依序返回預先安排的點數，用完即報錯"""

    def __init__(self, values):
        super().__init__(0)
        self.values = list(values)
        self.calls = []

    def randint(self, a, b):
        if not self.values:
            raise AssertionError(f"scripted values exhausted (randint({a}, {b}))")
        value = self.values.pop(0)
        assert a <= value <= b, f"scripted {value} outside randint({a}, {b})"
        self.calls.append((a, b))
        return value


def spec_of(text, rules=None):
    """解析單一段落並取出擲骰規格"""
    if rules is None:
        return parse_segment(text).spec
    return parse_segment(text, rules).spec


@pytest.fixture
def seeded():
    return random.Random(20240518)
