"""Tests for the voting phase and tally."""
from __future__ import annotations

from crewparty.meeting import MeetingPhase, tally_votes
from crewparty.roster import Role, Status
from conftest import HOST_ID, kill_player, participants_by_role, player_of, set_roles, started_room


async def voting_room(game, count: int = 5):
    session, pids = await started_room(game, count)
    await game.start_meeting(HOST_ID, "emergency", "Player1")
    await game.advance_to_voting(session.code, session.meeting.id)
    return session, pids


class TestVoteCasting:
    """Test vote casting mechanics."""

    async def test_player_can_cast_vote(self, game, channel):
        """Alive player should be able to cast a vote."""
        session, pids = await voting_room(game)
        target = player_of(session, pids[1])

        await game.vote(pids[0], target.id)

        assert session.votes[player_of(session, pids[0]).id] == target.id
        assert channel.last(pids[0], "vote-confirmed") is not None
        assert channel.last(HOST_ID, "host-ping")["kind"] == "vote"

    async def test_vote_not_broadcast_to_players(self, game, channel):
        session, pids = await voting_room(game)
        channel.clear()
        await game.vote(pids[0], player_of(session, pids[1]).id)
        assert {pid for pid, _ in channel.sent} == {pids[0], HOST_ID}

    async def test_skip_vote(self, game):
        session, pids = await voting_room(game)
        await game.vote(pids[0], "skip")
        await game.vote(pids[1], None)
        assert session.votes[player_of(session, pids[0]).id] is None
        assert session.votes[player_of(session, pids[1]).id] is None

    async def test_dead_player_cannot_vote(self, game, channel):
        """Dead player should not be able to cast a vote."""
        session, pids = await voting_room(game)
        kill_player(session, pids[0])

        await game.vote(pids[0], player_of(session, pids[1]).id)

        assert player_of(session, pids[0]).id not in session.votes
        assert channel.last(pids[0], "error")["code"] == "invalid_action"

    async def test_cannot_vote_for_dead_player(self, game):
        session, pids = await voting_room(game)
        kill_player(session, pids[1])

        await game.vote(pids[0], player_of(session, pids[1]).id)
        assert session.votes == {}

    async def test_cannot_vote_for_unknown_player(self, game, channel):
        session, pids = await voting_room(game)
        await game.vote(pids[0], "nobody")
        assert session.votes == {}
        assert channel.last(pids[0], "error")["code"] == "invalid_action"

    async def test_vote_only_during_voting_phase(self, game, channel):
        """Votes should only be accepted during the voting phase."""
        session, pids = await started_room(game, 5)
        await game.start_meeting(HOST_ID, "emergency", "Player1")
        assert session.meeting.phase == MeetingPhase.DISCUSSION

        await game.vote(pids[0], player_of(session, pids[1]).id)
        assert session.votes == {}

    async def test_player_can_change_vote(self, game):
        """Last vote wins."""
        session, pids = await voting_room(game)
        voter = player_of(session, pids[0]).id

        await game.vote(pids[0], player_of(session, pids[1]).id)
        await game.vote(pids[0], player_of(session, pids[2]).id)

        assert session.votes[voter] == player_of(session, pids[2]).id
        assert len(session.votes) == 1


class TestTally:
    """Test the tally rule in isolation."""

    def test_unique_plurality_ejects(self):
        votes = {"v1": "a", "v2": "a", "v3": "a", "v4": "b", "v5": None, "v6": None}
        alive = ["v1", "v2", "v3", "v4", "v5", "v6", "a", "b"]
        ejected, counts, skips = tally_votes(votes, alive)
        assert ejected == "a"
        assert counts == {"a": 3, "b": 1}
        assert skips == 2

    def test_tie_ejects_nobody(self):
        votes = {"v1": "a", "v2": "a", "v3": "b", "v4": "b"}
        ejected, _, _ = tally_votes(votes, ["v1", "v2", "v3", "v4", "a", "b"])
        assert ejected is None

    def test_tie_with_skip_ejects_nobody(self):
        votes = {"v1": "a", "v2": None}
        ejected, _, _ = tally_votes(votes, ["v1", "v2", "a"])
        assert ejected is None

    def test_skip_majority_ejects_nobody(self):
        votes = {"v1": "a", "v2": None, "v3": None}
        ejected, _, skips = tally_votes(votes, ["v1", "v2", "v3", "a"])
        assert ejected is None
        assert skips == 2

    def test_single_vote_is_enough(self):
        ejected, _, _ = tally_votes({"v1": "a"}, ["v1", "v2", "v3", "a"])
        assert ejected == "a"

    def test_no_votes(self):
        assert tally_votes({}, ["a", "b"]) == (None, {}, 0)

    def test_ballots_from_dead_voters_are_dropped(self):
        votes = {"v1": "a", "v2": "b", "v3": "b"}
        ejected, _, _ = tally_votes(votes, ["v1", "v2", "a", "b"])
        assert ejected is None


class TestVotingResults:
    """Test closing the vote."""

    async def test_ejection(self, game, channel):
        session, pids = await voting_room(game, 6)
        set_roles(session, imposters=[pids[0], pids[1]])
        target = player_of(session, pids[2])
        for pid in pids[3:]:
            await game.vote(pid, target.id)
        await game.vote(pids[0], None)

        await game.finish_voting(session.code, session.meeting.id)

        assert target.status == Status.VOTED_OUT
        assert channel.last(pids[2], "you-ejected") is not None
        results = channel.last(pids[0], "voting-results")
        assert results["ejected"] == {"id": target.id, "name": target.name, "role": "crewmate"}
        assert results["dead_count"] == 1
        assert results["skip_votes"] == 1
        assert session.meeting is None
        assert session.votes == {}

    async def test_tie_broadcasts_null(self, game, channel):
        session, pids = await voting_room(game, 5)
        a = player_of(session, pids[0]).id
        b = player_of(session, pids[1]).id
        await game.vote(pids[0], b)
        await game.vote(pids[1], b)
        await game.vote(pids[2], a)
        await game.vote(pids[3], a)

        await game.finish_voting(session.code, session.meeting.id)

        assert channel.last(HOST_ID, "voting-results")["ejected"] is None
        assert all(p.status == Status.ALIVE for p in session.roster)
        assert session.meeting is None

    async def test_finish_during_discussion_is_noop(self, game, channel):
        session, pids = await started_room(game, 5)
        await game.start_meeting(HOST_ID, "emergency", "Player1")

        await game.finish_voting(session.code, session.meeting.id)
        assert session.meeting is not None
        assert channel.of_type("voting-results") == []

    async def test_ejecting_last_imposter_ends_game(self, game, channel):
        session, pids = await voting_room(game, 5)
        [imposter] = participants_by_role(session, Role.IMPOSTER)
        target = player_of(session, imposter).id
        for pid in pids:
            if pid != imposter:
                await game.vote(pid, target)

        await game.finish_voting(session.code, session.meeting.id)

        over = channel.last(HOST_ID, "game-over")
        assert over == {"type": "game-over", "winner": "crewmates", "reason": "All imposters ejected!"}

    async def test_ejecting_crewmate_can_hand_imposters_the_win(self, game, channel):
        session, pids = await voting_room(game, 3)
        set_roles(session, imposters=[pids[0]])
        target = player_of(session, pids[2])
        await game.vote(pids[0], target.id)
        await game.vote(pids[1], target.id)

        await game.finish_voting(session.code, session.meeting.id)

        assert target.status == Status.VOTED_OUT
        assert channel.last(pids[1], "voting-results")["ejected"]["role"] == "crewmate"
        assert session.winner.team == "imposters"
        for pid in [HOST_ID] + pids:
            assert channel.last(pid, "game-over") == {"type": "game-over", "winner": "imposters", "reason": "Imposters win!"}
