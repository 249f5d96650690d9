"""Rating adjustments, match reverts, suspensions and the audit trail."""

import asyncio
import json

import pytest

from rankbot.config import Config
from rankbot.database.models import MatchStatus, Sport
from rankbot.utils.exceptions import (
    ConflictError, NotFoundError, PermissionDeniedError, ValidationError
)


async def confirmed_match(lifecycle, sport, winner, loser, winner_score=11, loser_score=5):
    match = await lifecycle.submit_match(sport, winner.id, loser.id, winner_score, loser_score)
    return await lifecycle.confirm_match(match.id, loser.id)


@pytest.mark.asyncio
async def test_adjust_rating_records_adjustment_and_audit(lifecycle, admin_ops, store, players):
    await confirmed_match(lifecycle, "table_football", players.alice, players.bob)
    await confirmed_match(lifecycle, "table_tennis", players.bob, players.carol)
    tennis_before = await store.get_rating(players.bob.id, Sport.TABLE_TENNIS)
    
    adjustment = await admin_ops.adjust_rating(
        players.bob.id, "table_football", 1100, "Tournament result imported late", players.admin_id
    )
    
    assert (adjustment.old_rating, adjustment.new_rating) == (984, 1100)
    assert adjustment.sport == Sport.TABLE_FOOTBALL
    assert adjustment.adjusted_by == players.admin_id
    assert await store.get_rating(players.bob.id, Sport.TABLE_FOOTBALL) == 1100
    assert await store.get_rating(players.bob.id, Sport.TABLE_TENNIS) == tennis_before
    
    adjustments = await admin_ops.get_rating_adjustments(players.admin_id)
    assert [a.id for a in adjustments] == [adjustment.id]
    
    audit = await admin_ops.get_audit_log(players.admin_id)
    assert len(audit) == 1
    assert audit[0].action_type == "adjust_rating"
    assert audit[0].target_id == players.bob.id
    assert audit[0].reason == "Tournament result imported late"
    details = json.loads(audit[0].details)
    assert (details['old_rating'], details['new_rating'], details['sport']) == (984, 1100, "table_football")


@pytest.mark.asyncio
async def test_adjust_rating_for_never_rated_participant(admin_ops, store, players):
    adjustment = await admin_ops.adjust_rating(players.carol.id, Sport.TABLE_TENNIS, 1200, "seeded", players.admin_id)
    
    assert adjustment.old_rating == Config.DEFAULT_RATING
    assert await store.get_rating(players.carol.id, Sport.TABLE_TENNIS) == 1200


@pytest.mark.asyncio
@pytest.mark.parametrize("sport,rating,reason", [
    ("table_tennis", 1100, ""),
    ("table_tennis", 1100, "   "),
    ("table_tennis", -1, "typo"),
    ("table_tennis", 10.5, "typo"),
    ("darts", 1100, "typo"),
])
async def test_adjust_rating_validation(admin_ops, players, sport, rating, reason):
    with pytest.raises(ValidationError):
        await admin_ops.adjust_rating(players.bob.id, sport, rating, reason, players.admin_id)
    assert await admin_ops.get_audit_log(players.admin_id) == []


@pytest.mark.asyncio
async def test_adjust_rating_requires_admin_and_known_target(admin_ops, store, players):
    with pytest.raises(PermissionDeniedError):
        await admin_ops.adjust_rating(players.bob.id, "table_tennis", 2000, "trust me", players.bob.id)
    assert await store.get_rating(players.bob.id, Sport.TABLE_TENNIS) == 1000
    
    with pytest.raises(NotFoundError):
        await admin_ops.adjust_rating(98765, "table_tennis", 1100, "typo", players.admin_id)


@pytest.mark.asyncio
async def test_owner_counts_as_administrator(admin_ops, players, monkeypatch):
    monkeypatch.setattr(Config, "OWNER_DISCORD_ID", players.alice.discord_id)
    
    adjustment = await admin_ops.adjust_rating(players.bob.id, "table_tennis", 1050, "owner fix", players.alice.id)
    
    assert adjustment.adjusted_by == players.alice.id


@pytest.mark.asyncio
async def test_revert_restores_ratings_and_removes_match(lifecycle, admin_ops, store, players):
    match = await confirmed_match(lifecycle, "table_tennis", players.alice, players.bob)
    assert await store.get_rating(players.alice.id, Sport.TABLE_TENNIS) == 1016
    
    snapshot = await admin_ops.revert_match(match.id, players.admin_id)
    
    assert snapshot['id'] == match.id
    assert await store.get_rating(players.alice.id, Sport.TABLE_TENNIS) == 1000
    assert await store.get_rating(players.bob.id, Sport.TABLE_TENNIS) == 1000
    assert await store.get_match(match.id) is None
    
    with pytest.raises(NotFoundError):
        await admin_ops.revert_match(match.id, players.admin_id)


@pytest.mark.asyncio
async def test_revert_audit_entry_holds_full_match(lifecycle, admin_ops, players):
    match = await confirmed_match(lifecycle, "table_tennis", players.alice, players.bob, 11, 7)
    
    await admin_ops.revert_match(match.id, players.admin_id)
    
    entries = await admin_ops.get_audit_log(players.admin_id, action_type="revert_match")
    assert len(entries) == 1
    assert entries[0].target_type == "match"
    details = json.loads(entries[0].details)
    assert details['status'] == "confirmed"
    assert (details['player_a_score'], details['player_b_score']) == (11, 7)
    assert details['player_a_rating_before'] == 1000
    assert details['player_a_rating_after'] == 1016
    assert details['submitted_by'] == players.alice.id
    assert len(details['restored_ratings']) == 2


@pytest.mark.asyncio
async def test_revert_only_restores_snapshot_of_that_match(lifecycle, admin_ops, store, players):
    first = await confirmed_match(lifecycle, "table_tennis", players.alice, players.bob)
    await confirmed_match(lifecycle, "table_tennis", players.carol, players.alice)
    after_second = await store.get_rating(players.alice.id, Sport.TABLE_TENNIS)
    
    await admin_ops.revert_match(first.id, players.admin_id)
    
    # Ratings go back to the first match's before-snapshot
    assert await store.get_rating(players.alice.id, Sport.TABLE_TENNIS) == 1000
    assert after_second != 1000
    assert await store.get_rating(players.bob.id, Sport.TABLE_TENNIS) == 1000


@pytest.mark.asyncio
async def test_revert_requires_confirmed_match(lifecycle, admin_ops, players):
    match = await lifecycle.submit_match("table_tennis", players.alice.id, players.bob.id, 11, 5)
    
    with pytest.raises(ConflictError):
        await admin_ops.revert_match(match.id, players.admin_id)
    with pytest.raises(NotFoundError):
        await admin_ops.revert_match(4040, players.admin_id)
    assert (await lifecycle.get_match(match.id)).status == MatchStatus.PENDING


@pytest.mark.asyncio
async def test_non_admin_cannot_revert(lifecycle, admin_ops, store, players):
    match = await confirmed_match(lifecycle, "table_tennis", players.alice, players.bob)
    
    with pytest.raises(PermissionDeniedError):
        await admin_ops.revert_match(match.id, players.bob.id)
    
    assert await store.get_match(match.id) is not None
    assert await store.get_rating(players.bob.id, Sport.TABLE_TENNIS) == 984


@pytest.mark.asyncio
async def test_concurrent_reverts_succeed_once(lifecycle, admin_ops, store, players):
    match = await confirmed_match(lifecycle, "table_tennis", players.alice, players.bob)
    
    results = await asyncio.gather(
        admin_ops.revert_match(match.id, players.admin_id),
        admin_ops.revert_match(match.id, players.admin_id),
        return_exceptions=True
    )
    
    assert sum(isinstance(r, NotFoundError) for r in results) == 1
    assert sum(isinstance(r, dict) for r in results) == 1
    assert await store.get_rating(players.alice.id, Sport.TABLE_TENNIS) == 1000
    assert len(await admin_ops.get_audit_log(players.admin_id, action_type="revert_match")) == 1


@pytest.mark.asyncio
async def test_ban_and_unban(admin_ops, players):
    banned = await admin_ops.ban_participant(players.bob.id, "sandbagging", players.admin_id)
    assert banned.is_banned
    assert banned.ban_reason == "sandbagging"
    assert banned.banned_by == players.admin_id
    
    with pytest.raises(ConflictError):
        await admin_ops.ban_participant(players.bob.id, "again", players.admin_id)
    assert [p.id for p in await admin_ops.get_banned_participants(players.admin_id)] == [players.bob.id]
    
    unbanned = await admin_ops.unban_participant(players.bob.id, players.admin_id)
    assert not unbanned.is_banned
    assert unbanned.ban_reason is None
    with pytest.raises(ConflictError):
        await admin_ops.unban_participant(players.bob.id, players.admin_id)
    
    actions = [entry.action_type for entry in await admin_ops.get_audit_log(players.admin_id)]
    assert sorted(actions) == ["ban_participant", "unban_participant"]


@pytest.mark.asyncio
async def test_ban_does_not_touch_past_ratings(lifecycle, admin_ops, store, players):
    await confirmed_match(lifecycle, "table_tennis", players.alice, players.bob)
    
    await admin_ops.ban_participant(players.alice.id, "cheating", players.admin_id)
    
    assert await store.get_rating(players.alice.id, Sport.TABLE_TENNIS) == 1016


@pytest.mark.asyncio
async def test_ban_permission_rules(admin_ops, players):
    with pytest.raises(PermissionDeniedError):
        await admin_ops.ban_participant(players.admin_id, "oops", players.admin_id)
    with pytest.raises(PermissionDeniedError):
        await admin_ops.ban_participant(players.carol.id, "grudge", players.bob.id)
    
    await admin_ops.set_admin(players.carol.id, True, players.admin_id)
    with pytest.raises(PermissionDeniedError):
        await admin_ops.ban_participant(players.carol.id, "rival admin", players.admin_id)
    with pytest.raises(NotFoundError):
        await admin_ops.ban_participant(31337, "who", players.admin_id)


@pytest.mark.asyncio
async def test_set_admin(admin_ops, players):
    promoted = await admin_ops.set_admin(players.carol.id, True, players.admin_id)
    assert promoted.is_admin
    
    # The new admin can act
    await admin_ops.adjust_rating(players.bob.id, "table_tennis", 1005, "recount", players.carol.id)
    
    with pytest.raises(PermissionDeniedError):
        await admin_ops.set_admin(players.admin_id, False, players.admin_id)
    with pytest.raises(PermissionDeniedError):
        await admin_ops.set_admin(players.alice.id, True, players.bob.id)


@pytest.mark.asyncio
async def test_admin_reads_require_admin(admin_ops, players):
    with pytest.raises(PermissionDeniedError):
        await admin_ops.get_audit_log(players.alice.id)
    with pytest.raises(PermissionDeniedError):
        await admin_ops.get_system_health(players.alice.id)


@pytest.mark.asyncio
async def test_confirmed_matches_listing(lifecycle, admin_ops, players):
    confirmed = await confirmed_match(lifecycle, "table_tennis", players.alice, players.bob)
    await lifecycle.submit_match("table_tennis", players.alice.id, players.carol.id, 11, 3)
    
    matches = await admin_ops.get_confirmed_matches(players.admin_id)
    
    assert [m.id for m in matches] == [confirmed.id]


@pytest.mark.asyncio
async def test_system_health(lifecycle, admin_ops, players):
    await confirmed_match(lifecycle, "table_tennis", players.alice, players.bob)
    await lifecycle.submit_match("table_football", players.alice.id, players.carol.id, 10, 3)
    await admin_ops.ban_participant(players.carol.id, "spam", players.admin_id)
    
    health = await admin_ops.get_system_health(players.admin_id)
    
    assert health['participants'] == 4
    assert health['banned_participants'] == 1
    assert health['matches'] == {'pending': 1, 'confirmed': 1, 'denied': 0, 'cancelled': 0}
    assert health['cache']['max_entries'] == 100


@pytest.mark.asyncio
async def test_revert_audit_timestamps_are_utc(lifecycle, admin_ops, players):
    match = await confirmed_match(lifecycle, "table_tennis", players.alice, players.bob)
    
    await admin_ops.revert_match(match.id, players.admin_id)
    
    entry = (await admin_ops.get_audit_log(players.admin_id, action_type="revert_match"))[0]
    details = json.loads(entry.details)
    assert details['created_at'].endswith("+00:00")
    assert details['confirmed_at'].endswith("+00:00")


@pytest.mark.asyncio
async def test_delete_pending_match_frees_the_pair(lifecycle, admin_ops, store, players):
    spam = await lifecycle.submit_match("table_tennis", players.alice.id, players.bob.id, 11, 0)
    with pytest.raises(ConflictError):
        await lifecycle.submit_match("table_tennis", players.bob.id, players.alice.id, 11, 9)
    
    snapshot = await admin_ops.delete_match(spam.id, players.admin_id, "spam submission")
    
    assert snapshot['status'] == "pending"
    assert await store.get_match(spam.id) is None
    assert await store.get_rating(players.alice.id, Sport.TABLE_TENNIS) == 1000
    
    resubmitted = await lifecycle.submit_match("table_tennis", players.bob.id, players.alice.id, 11, 9)
    assert resubmitted.status == MatchStatus.PENDING
    
    with pytest.raises(NotFoundError):
        await admin_ops.delete_match(spam.id, players.admin_id)


@pytest.mark.asyncio
async def test_delete_match_writes_audit_entry(lifecycle, admin_ops, players):
    match = await lifecycle.submit_match("table_football", players.alice.id, players.carol.id, 10, 4)
    await lifecycle.deny_match(match.id, players.carol.id)
    
    await admin_ops.delete_match(match.id, players.admin_id, "  duplicate  ")
    
    entries = await admin_ops.get_audit_log(players.admin_id, action_type="delete_match")
    assert len(entries) == 1
    assert entries[0].target_type == "match"
    assert entries[0].target_id == match.id
    assert entries[0].reason == "duplicate"
    details = json.loads(entries[0].details)
    assert details['status'] == "denied"
    assert details['sport'] == "table_football"
    assert (details['player_a_score'], details['player_b_score']) == (10, 4)


@pytest.mark.asyncio
async def test_delete_match_refuses_confirmed(lifecycle, admin_ops, store, players):
    match = await confirmed_match(lifecycle, "table_tennis", players.alice, players.bob)
    
    with pytest.raises(ConflictError):
        await admin_ops.delete_match(match.id, players.admin_id)
    
    assert (await store.get_match(match.id)).status == MatchStatus.CONFIRMED
    assert await store.get_rating(players.alice.id, Sport.TABLE_TENNIS) == 1016
    assert await admin_ops.get_audit_log(players.admin_id, action_type="delete_match") == []


@pytest.mark.asyncio
async def test_delete_match_requires_admin(lifecycle, admin_ops, store, players):
    match = await lifecycle.submit_match("table_tennis", players.alice.id, players.bob.id, 11, 5)
    
    with pytest.raises(PermissionDeniedError):
        await admin_ops.delete_match(match.id, players.bob.id)
    
    assert await store.get_match(match.id) is not None
