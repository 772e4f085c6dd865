from src.snapshots import (
    InviteSnapshotCache,
    find_consumed_invite,
    snapshot_from_invites,
)
from tests.fakes import FakeInvite, FakeUser

ALICE = FakeUser(1, "alice")
BOB = FakeUser(2, "bob")


def make_invites(uses_by_code):
    return [FakeInvite(code, uses, ALICE) for code, uses in uses_by_code.items()]


def test_consumed_invite_is_the_one_whose_uses_increased():
    previous = {"A": 2, "B": 0}
    current = make_invites({"A": 2, "B": 1, "C": 1})

    used = find_consumed_invite(previous, current)

    assert used is not None
    assert used.code == "B"


def test_brand_new_code_with_uses_counts_as_consumed():
    previous = {"A": 2}
    current = make_invites({"A": 2, "C": 1})

    used = find_consumed_invite(previous, current)

    assert used is not None
    assert used.code == "C"


def test_brand_new_code_without_uses_is_not_consumed():
    previous = {"A": 2}
    current = make_invites({"A": 2, "C": 0})

    assert find_consumed_invite(previous, current) is None


def test_first_increased_invite_wins_when_several_moved():
    previous = {"A": 0, "B": 0}
    current = [FakeInvite("B", 1, BOB), FakeInvite("A", 1, ALICE)]

    used = find_consumed_invite(previous, current)

    assert used.code == "B"
    assert used.inviter is BOB


def test_missing_uses_are_treated_as_zero():
    invites = [FakeInvite("A", None, ALICE), FakeInvite("B", 3, BOB)]

    assert snapshot_from_invites(invites) == {"A": 0, "B": 3}
    assert find_consumed_invite({"B": 3}, invites) is None


def test_empty_baseline_picks_first_used_invite():
    current = make_invites({"A": 0, "B": 4})

    assert find_consumed_invite({}, current).code == "B"


def test_cache_stores_copies_per_guild():
    cache = InviteSnapshotCache()
    snapshot = {"A": 1}
    cache.set(10, snapshot)
    snapshot["A"] = 5

    assert cache.get(10) == {"A": 1}
    assert cache.get(11) is None

    returned = cache.get(10)
    returned["B"] = 2
    assert cache.get(10) == {"A": 1}


def test_cache_tracks_created_and_deleted_codes():
    cache = InviteSnapshotCache()
    cache.update_code(10, "X", 0)
    assert cache.get(10) is None

    cache.set(10, {"A": 1})
    cache.update_code(10, "X", None)
    assert cache.get(10) == {"A": 1, "X": 0}

    cache.discard_code(10, "A")
    cache.discard_code(10, "missing")
    assert cache.get(10) == {"X": 0}


def test_cache_lock_is_stable_per_guild():
    cache = InviteSnapshotCache()

    assert cache.lock(1) is cache.lock(1)
    assert cache.lock(1) is not cache.lock(2)
