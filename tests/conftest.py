import random

import pytest

from wisdombot.nicknames import Member


class ScriptedRandom:
    """random() replays scripted values (then 0.0); choice() is seeded."""

    def __init__(self, values=(), seed: int = 7):
        self.values = list(values)
        self._rng = random.Random(seed)

    def random(self) -> float:
        return self.values.pop(0) if self.values else 0.0

    def choice(self, seq):
        return self._rng.choice(seq)

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def randrange(self, stop: int) -> int:
        return self._rng.randrange(stop)


class RecordingMutator:
    def __init__(self, fail_ids=(), reject_ids=()):
        self.calls: list[tuple[int, str, str]] = []
        self.fail_ids = set(fail_ids)
        self.reject_ids = set(reject_ids)

    async def __call__(self, member: Member, value: str, reason: str):
        self.calls.append((member.member_id, value, reason))
        if member.member_id in self.fail_ids:
            raise RuntimeError("Missing Permissions")
        if member.member_id in self.reject_ids:
            return False
        return True

    def values_for(self, member_id: int) -> list[str]:
        return [value for mid, value, _ in self.calls if mid == member_id]


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.calls: list[tuple[int, str]] = []
        self.fail = fail

    async def __call__(self, member: Member, value: str):
        self.calls.append((member.member_id, value))
        if self.fail:
            raise RuntimeError("Cannot send messages to this user")
        return True


@pytest.fixture
def scripted_random():
    return ScriptedRandom


@pytest.fixture
def mutator():
    return RecordingMutator()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def self_member():
    return Member(member_id=1, rank=5, is_bot=True, display_name="WisdomBot")
