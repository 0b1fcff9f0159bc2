from __future__ import annotations

import json

from django.test import TestCase
from django.utils import timezone

from core.elections_errors import ElectionUnavailableError
from core.elections_nota import get_or_create_nota_candidate
from core.elections_offline import merge_offline_votes
from core.elections_tally import public_winners, tally, tally_election, zone_turnout
from core.models import Election, ElectionType, Voter
from core.tests.utils_test_data import (
    cast_offline_votes,
    cast_online_votes,
    make_candidate,
    make_election,
    make_voter,
    make_zone,
)


class TallyTestBase(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.election = make_election(election_type=ElectionType.trustees)
        self.zone = make_zone(code="Z1", seats=1, sort_order=1)
        self.a = make_candidate(zone=self.zone, name="Candidate A")
        self.b = make_candidate(zone=self.zone, name="Candidate B")
        self.nota = get_or_create_nota_candidate(zone=self.zone)
        self._voter_seq = 0

    def _online(self, candidate, count: int, *, prefix: str = "VID-", zone=None) -> list[Voter]:
        voters = []
        for _ in range(count):
            self._voter_seq += 1
            voter = make_voter(f"{prefix}{self._voter_seq:04d}", zone=zone or candidate.zone)
            cast_online_votes(election=self.election, voter=voter, candidates=[candidate])
            voters.append(voter)
        return voters

    def _offline(self, candidate, count: int, *, prefix: str = "VID-", is_merged: bool = False) -> list[str]:
        vids = []
        for _ in range(count):
            self._voter_seq += 1
            vid = f"{prefix}{self._voter_seq:04d}"
            cast_offline_votes(election=self.election, voter_id=vid, candidates=[candidate], is_merged=is_merged)
            vids.append(vid)
        return vids


class TallyMergeTests(TallyTestBase):
    def test_online_and_offline_counts_merge_into_ranked_table(self) -> None:
        self._online(self.a, 5)
        self._offline(self.a, 3)
        self._online(self.b, 6)
        self._online(self.nota, 1)

        result = tally_election(election=self.election)

        zone = result.zone(self.zone.pk)
        self.assertEqual(
            [(c.name, c.votes, c.online_votes, c.offline_votes, c.rank) for c in zone.candidates],
            [
                ("Candidate A", 8, 5, 3, 1),
                ("Candidate B", 6, 6, 0, 2),
                ("NOTA", 1, 1, 0, 3),
            ],
        )
        self.assertEqual([w.id for w in zone.winners], [self.a.pk])
        self.assertTrue(zone.candidates[2].is_nota)

    def test_merged_offline_rows_are_counted_exactly_once(self) -> None:
        self._online(self.a, 2)
        self._offline(self.a, 2)
        self._offline(self.b, 1, is_merged=True)

        before = tally_election(election=self.election).as_dict()
        merge_offline_votes(election=self.election, actor="supervisor")
        after = tally_election(election=self.election).as_dict()

        self.assertEqual(before, after)
        zone = tally_election(election=self.election).zone(self.zone.pk)
        counts = {c.id: (c.online_votes, c.offline_votes, c.votes) for c in zone.candidates}
        self.assertEqual(counts[self.a.pk], (2, 2, 4))
        self.assertEqual(counts[self.b.pk], (0, 1, 1))

    def test_offline_only_and_online_only_candidates(self) -> None:
        self._offline(self.a, 2)
        self._online(self.b, 1)

        zone = tally_election(election=self.election).zone(self.zone.pk)

        by_id = {c.id: c for c in zone.candidates}
        self.assertEqual((by_id[self.a.pk].online_votes, by_id[self.a.pk].offline_votes), (0, 2))
        self.assertEqual((by_id[self.b.pk].online_votes, by_id[self.b.pk].offline_votes), (1, 0))
        self.assertNotIn(self.nota.pk, by_id)

    def test_all_nota_placeholder_rows_carry_no_votes(self) -> None:
        cast_offline_votes(election=self.election, voter_id="VID-0900", candidates=[None])
        self._online(self.a, 1)

        zone = tally_election(election=self.election).zone(self.zone.pk)

        self.assertEqual([(c.id, c.votes) for c in zone.candidates], [(self.a.pk, 1)])

    def test_equal_counts_are_ordered_by_candidate_id(self) -> None:
        self._online(self.b, 2)
        self._online(self.a, 2)

        zone = tally_election(election=self.election).zone(self.zone.pk)

        self.assertEqual([c.id for c in zone.candidates], sorted([self.a.pk, self.b.pk]))
        self.assertEqual([c.rank for c in zone.candidates], [1, 2])

    def test_tally_is_idempotent(self) -> None:
        self._online(self.a, 3)
        self._offline(self.b, 2)

        first = json.dumps(tally_election(election=self.election).as_dict())
        second = json.dumps(tally_election(election=self.election).as_dict())

        self.assertEqual(first, second)

    def test_test_voters_never_affect_the_tally(self) -> None:
        self._online(self.a, 1)
        self._online(self.b, 4, prefix="TEST_")
        self._offline(self.b, 4, prefix="TEST_")

        zone = tally_election(election=self.election).zone(self.zone.pk)

        self.assertEqual([(c.id, c.votes) for c in zone.candidates], [(self.a.pk, 1)])

    def test_other_elections_are_not_counted(self) -> None:
        self._online(self.a, 1)
        self.election.status = Election.Status.closed
        self.election.save(update_fields=["status"])
        later = make_election(election_type=ElectionType.trustees)
        voter = make_voter("VID-0999", zone=self.zone)
        cast_online_votes(election=later, voter=voter, candidates=[self.b])

        zone = tally_election(election=self.election).zone(self.zone.pk)

        self.assertEqual([c.id for c in zone.candidates], [self.a.pk])

    def test_zones_are_ordered_and_winners_fill_seats(self) -> None:
        zone2 = make_zone(code="Z0", seats=2, sort_order=2)
        c1 = make_candidate(zone=zone2, name="C1")
        c2 = make_candidate(zone=zone2, name="C2")
        c3 = make_candidate(zone=zone2, name="C3")
        self._online(c1, 3)
        self._online(c2, 2)
        self._online(c3, 1)
        self._online(self.a, 1)

        result = tally_election(election=self.election)

        self.assertEqual([z.code for z in result.zones], ["Z1", "Z0"])
        self.assertEqual([w.id for w in result.zone(zone2.pk).winners], [c1.pk, c2.pk])

    def test_nota_may_hold_a_seat_unless_real_winners_only(self) -> None:
        self._online(self.nota, 3)
        self._online(self.a, 1)

        default = tally_election(election=self.election).zone(self.zone.pk)
        self.assertEqual([w.id for w in default.winners], [self.nota.pk])
        self.assertTrue(default.nota_leads)
        self.assertEqual(default.vacant_seats, 0)

        real = tally_election(election=self.election, real_winners_only=True).zone(self.zone.pk)
        self.assertEqual(real.winners, ())
        self.assertEqual(real.vacant_seats, 1)
        self.assertEqual(real.candidates[0].id, self.nota.pk)

    def test_unrevealed_tally_exposes_nothing_identifying(self) -> None:
        self._online(self.a, 1)

        payload = tally_election(election=self.election, reveal=False).as_dict()

        self.assertEqual(payload, {"revealed": False, "electionType": ElectionType.trustees, "zones": []})


class TallyByTypeTests(TallyTestBase):
    def test_tally_uses_most_recent_non_draft_election(self) -> None:
        self._online(self.a, 1)
        make_election(election_type=ElectionType.trustees, status=Election.Status.draft)

        result = tally(ElectionType.trustees)

        self.assertEqual(result.election_id, self.election.pk)

    def test_tally_without_election_is_unavailable(self) -> None:
        with self.assertRaises(ElectionUnavailableError):
            tally(ElectionType.yuva_pankh)

    def test_public_winners_require_declaration(self) -> None:
        self._online(self.a, 2)

        self.assertEqual(
            public_winners(ElectionType.trustees),
            {"declared": False, "electionType": ElectionType.trustees, "zones": []},
        )

        self.election.results_declared_at = timezone.now()
        self.election.save(update_fields=["results_declared_at"])

        feed = public_winners(ElectionType.trustees)
        self.assertTrue(feed["declared"])
        self.assertEqual(feed["zones"][0]["winners"][0]["id"], self.a.pk)
        self.assertNotIn("candidates", feed["zones"][0])


class ZoneTurnoutTests(TallyTestBase):
    def test_turnout_counts_distinct_voters_per_channel(self) -> None:
        zone2 = make_zone(code="Z2", seats=1, sort_order=2)
        online_voters = self._online(self.a, 2)
        Voter.objects.filter(pk__in=[v.pk for v in online_voters]).update(has_voted=True)
        offline_voter = make_voter("VID-0500", zone=self.zone)
        cast_offline_votes(election=self.election, voter_id=offline_voter.voter_id, candidates=[self.b])
        make_voter("VID-0501", zone=self.zone)
        make_voter("VID-0502", zone=zone2)
        make_voter("TEST_0001", zone=self.zone)

        report = zone_turnout(election=self.election)

        z1, z2 = report.zones
        self.assertEqual((z1.eligible_voters, z1.online_voters, z1.offline_voters), (4, 2, 1))
        self.assertEqual(z1.turnout_percent, 75.0)
        self.assertEqual((z2.eligible_voters, z2.voted, z2.turnout_percent), (1, 0, 0.0))
        self.assertEqual(report.warnings, ())

    def test_flag_mismatches_are_reported_as_warnings(self) -> None:
        self._online(self.a, 1)
        make_voter("VID-0600", zone=self.zone)
        Voter.objects.filter(voter_id="VID-0600").update(has_voted=True)

        with self.assertLogs("core.elections_tally", level="WARNING") as logs:
            report = zone_turnout(election=self.election)

        self.assertEqual(len(report.warnings), 2)
        self.assertTrue(any("not flagged" in w for w in report.warnings))
        self.assertTrue(any("VID-0600" in w for w in report.warnings))
        self.assertEqual(len(logs.output), 2)
        self.assertEqual(report.as_dict()["zones"][0]["voted"], 1)

    def test_votes_from_another_election_do_not_hide_a_flag_mismatch(self) -> None:
        earlier = make_election(election_type=ElectionType.trustees, status=Election.Status.closed)
        voter = make_voter("VID-0700", zone=self.zone)
        cast_online_votes(election=earlier, voter=voter, candidates=[self.a])
        Voter.objects.filter(pk=voter.pk).update(has_voted=True)

        with self.assertLogs("core.elections_tally", level="WARNING"):
            report = zone_turnout(election=self.election)

        self.assertEqual(
            list(report.warnings),
            ["Voter VID-0700 is flagged as having voted but has no online votes."],
        )
