"""Leaderboard reads through the ranking cache."""

import pytest

from rankbot.utils.exceptions import ValidationError


async def confirm(lifecycle, sport, winner, loser):
    match = await lifecycle.submit_match(sport, winner.id, loser.id, 11, 5)
    return await lifecycle.confirm_match(match.id, loser.id)


@pytest.mark.asyncio
async def test_confirmation_shows_up_on_next_read(lifecycle, leaderboard_service, players):
    before = await leaderboard_service.get_leaderboard("table_tennis")
    assert before.entries == ()
    
    await confirm(lifecycle, "table_tennis", players.alice, players.bob)
    board = await leaderboard_service.get_leaderboard("table_tennis")
    
    assert [(e.rank, e.participant_id, e.rating) for e in board.entries] == [
        (1, players.alice.id, 1016),
        (2, players.bob.id, 984),
    ]
    alice, bob = board.entries
    assert (alice.wins, alice.losses, alice.win_rate) == (1, 0, 100.0)
    assert (bob.wins, bob.losses, bob.win_rate) == (0, 1, 0.0)
    assert alice.display_name == "Alice"


@pytest.mark.asyncio
async def test_reads_are_served_from_cache(leaderboard_service, lifecycle, players, cache):
    await confirm(lifecycle, "table_tennis", players.alice, players.bob)
    
    first = await leaderboard_service.get_leaderboard("table_tennis")
    second = await leaderboard_service.get_leaderboard("table_tennis")
    
    assert second is first
    assert (await cache.stats()).hits >= 1


@pytest.mark.asyncio
async def test_confirmation_invalidates_only_its_sport(leaderboard_service, lifecycle, players):
    tennis = await leaderboard_service.get_leaderboard("table_tennis")
    football = await leaderboard_service.get_leaderboard("table_football")
    
    await confirm(lifecycle, "table_football", players.alice, players.bob)
    
    assert await leaderboard_service.get_leaderboard("table_tennis") is tennis
    assert await leaderboard_service.get_leaderboard("table_football") is not football


@pytest.mark.asyncio
async def test_denial_does_not_invalidate(leaderboard_service, lifecycle, players):
    board = await leaderboard_service.get_leaderboard("table_tennis")
    match = await lifecycle.submit_match("table_tennis", players.alice.id, players.bob.id, 11, 5)
    
    await lifecycle.deny_match(match.id, players.bob.id)
    
    assert await leaderboard_service.get_leaderboard("table_tennis") is board


@pytest.mark.asyncio
async def test_admin_changes_are_visible(leaderboard_service, lifecycle, admin_ops, players):
    match = await confirm(lifecycle, "table_tennis", players.alice, players.bob)
    await leaderboard_service.get_leaderboard("table_tennis")
    
    await admin_ops.adjust_rating(players.bob.id, "table_tennis", 1200, "appeal upheld", players.admin_id)
    board = await leaderboard_service.get_leaderboard("table_tennis")
    assert board.entries[0].participant_id == players.bob.id
    
    await admin_ops.revert_match(match.id, players.admin_id)
    board = await leaderboard_service.get_leaderboard("table_tennis")
    assert {e.participant_id: e.rating for e in board.entries} == {players.alice.id: 1000, players.bob.id: 1000}
    assert all(e.matches_played == 0 for e in board.entries)


@pytest.mark.asyncio
async def test_ties_break_on_wins_then_id(leaderboard_service, lifecycle, admin_ops, players):
    await confirm(lifecycle, "table_tennis", players.alice, players.bob)
    # Pin everyone to the same rating; Alice keeps her win
    for participant in (players.alice, players.bob, players.carol):
        await admin_ops.adjust_rating(participant.id, "table_tennis", 1000, "reset", players.admin_id)
    
    board = await leaderboard_service.get_leaderboard("table_tennis")
    
    expected_rest = sorted([players.bob.id, players.carol.id])
    assert [e.participant_id for e in board.entries] == [players.alice.id] + expected_rest


@pytest.mark.asyncio
async def test_banned_participants_are_hidden(leaderboard_service, lifecycle, admin_ops, players):
    await confirm(lifecycle, "table_tennis", players.alice, players.bob)
    await leaderboard_service.get_leaderboard("table_tennis")
    
    await admin_ops.ban_participant(players.alice.id, "smurfing", players.admin_id)
    board = await leaderboard_service.get_leaderboard("table_tennis")
    assert [e.participant_id for e in board.entries] == [players.bob.id]
    assert board.entries[0].rank == 1
    
    await admin_ops.unban_participant(players.alice.id, players.admin_id)
    board = await leaderboard_service.get_leaderboard("table_tennis")
    assert board.entry_for(players.alice.id).rank == 1


@pytest.mark.asyncio
async def test_pages(leaderboard_service, lifecycle, players):
    await confirm(lifecycle, "table_tennis", players.alice, players.bob)
    await confirm(lifecycle, "table_tennis", players.carol, players.bob)
    
    board, first_page = await leaderboard_service.get_page("table_tennis", page=1, page_size=2)
    _, second_page = await leaderboard_service.get_page("table_tennis", page=2, page_size=2)
    
    assert board.total_participants == 3
    assert board.total_pages(2) == 2
    assert [e.rank for e in first_page] == [1, 2]
    assert [e.participant_id for e in second_page] == [players.bob.id]


@pytest.mark.asyncio
@pytest.mark.parametrize("page,page_size", [(0, 10), (1, 0), (1, 51)])
async def test_page_validation(leaderboard_service, page, page_size):
    with pytest.raises(ValidationError):
        await leaderboard_service.get_page("table_tennis", page=page, page_size=page_size)


@pytest.mark.asyncio
async def test_unknown_sport(leaderboard_service):
    with pytest.raises(ValidationError):
        await leaderboard_service.get_leaderboard("chess")
