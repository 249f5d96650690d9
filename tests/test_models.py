"""Match status graph and sport parsing."""

from datetime import datetime, timezone

import pytest

from rankbot.database.models import MATCH_TRANSITIONS, Match, MatchStatus, Sport


def test_only_pending_matches_can_move():
    assert MatchStatus.PENDING.can_transition_to(MatchStatus.CONFIRMED)
    assert MatchStatus.PENDING.can_transition_to(MatchStatus.DENIED)
    assert MatchStatus.PENDING.can_transition_to(MatchStatus.CANCELLED)
    assert not MatchStatus.PENDING.can_transition_to(MatchStatus.PENDING)
    
    for status in (MatchStatus.CONFIRMED, MatchStatus.DENIED, MatchStatus.CANCELLED):
        assert status.is_terminal
        for target in MatchStatus:
            assert not status.can_transition_to(target)


def test_every_status_has_a_transition_entry():
    assert set(MATCH_TRANSITIONS) == set(MatchStatus)


@pytest.mark.parametrize("value,expected", [
    ("table_tennis", Sport.TABLE_TENNIS),
    (" Table_Football ", Sport.TABLE_FOOTBALL),
    ("TABLE_TENNIS", Sport.TABLE_TENNIS),
    (Sport.TABLE_FOOTBALL, Sport.TABLE_FOOTBALL),
])
def test_sport_parse(value, expected):
    assert Sport.parse(value) is expected


@pytest.mark.parametrize("value", ["chess", "", None, 3])
def test_sport_parse_rejects_unknown(value):
    with pytest.raises(ValueError):
        Sport.parse(value)


def test_sport_display_name():
    assert Sport.TABLE_TENNIS.display_name == "Table Tennis"


def test_match_helpers():
    match = Match(
        id=7, sport=Sport.TABLE_TENNIS, player_a_id=1, player_b_id=2,
        player_a_score=11, player_b_score=5, winner_id=1,
        status=MatchStatus.PENDING, submitted_by=1,
    )
    assert match.involves(2)
    assert not match.involves(3)
    assert match.opponent_of(1) == 2
    assert match.opponent_of(3) is None
    assert match.loser_id == 2
    
    audit = match.to_audit_dict()
    assert audit['sport'] == "table_tennis"
    assert audit['status'] == "pending"
    assert audit['player_a_score'] == 11


def test_audit_timestamps_carry_utc_offset():
    # SQLite returns DateTime columns without tzinfo
    match = Match(
        id=8, sport=Sport.TABLE_TENNIS, player_a_id=1, player_b_id=2,
        player_a_score=11, player_b_score=5, winner_id=1,
        status=MatchStatus.CONFIRMED, submitted_by=1,
        created_at=datetime(2026, 10, 19, 9, 0, 0),
        confirmed_at=datetime(2026, 10, 19, 9, 3, 16, tzinfo=timezone.utc),
    )
    
    audit = match.to_audit_dict()
    
    assert audit['created_at'] == "2026-10-19T09:00:00+00:00"
    assert audit['confirmed_at'] == "2026-10-19T09:03:16+00:00"
