from __future__ import annotations

from unittest.mock import patch

from django.db import DatabaseError, IntegrityError
from django.test import TestCase

from core.elections_errors import (
    AlreadyVotedError,
    DuplicateSelectionError,
    ElectionUnavailableError,
    InvalidCandidateError,
    MalformedBallotError,
    NoZoneAssignedError,
    PersistenceError,
    TooManySelectionsError,
    ZoneMismatchError,
)
from core.elections_services import RequestProvenance, submit_ballot
from core.models import AuditLogEntry, BallotClaim, Candidate, Election, ElectionType, Vote
from core.tests.utils_test_data import make_candidate, make_election, make_voter, make_zone


class OnlineBallotSubmissionTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.election = make_election(election_type=ElectionType.karobari)
        self.zone = make_zone(code="MUM", seats=2, election_type=ElectionType.karobari)
        self.other_zone = make_zone(code="PUN", seats=1, election_type=ElectionType.karobari)
        self.alice = make_candidate(zone=self.zone, name="Alice")
        self.bob = make_candidate(zone=self.zone, name="Bob")
        self.carol = make_candidate(zone=self.other_zone, name="Carol")
        self.voter = make_voter("VID-0001", zone=self.zone)

    def _submit(self, ballot, *, voter=None):
        return submit_ballot(
            voter=voter or self.voter,
            election_type=ElectionType.karobari,
            ballot=ballot,
        )

    def test_partial_ballot_is_auto_filled_with_nota(self) -> None:
        receipt = self._submit({str(self.zone.pk): [str(self.alice.pk)]})

        votes = list(Vote.objects.filter(election=self.election, voter=self.voter).select_related("candidate"))
        self.assertEqual(len(votes), 2)
        self.assertEqual(receipt.votes_count, 2)
        self.assertEqual(receipt.nota_count, 1)
        self.assertEqual(sorted(v.candidate.is_nota for v in votes), [False, True])
        nota = next(v.candidate for v in votes if v.candidate.is_nota)
        self.assertEqual(nota.zone_id, self.zone.pk)
        self.assertEqual(nota.status, Candidate.Status.approved)

    def test_too_many_selections_for_single_seat_zone_is_rejected(self) -> None:
        voter = make_voter("VID-0002", zone=self.other_zone)
        extra = make_candidate(zone=self.other_zone, name="Dan")

        with self.assertRaises(TooManySelectionsError):
            self._submit({str(self.other_zone.pk): [str(self.carol.pk), str(extra.pk)]}, voter=voter)

        self.assertFalse(Vote.objects.filter(voter=voter).exists())
        self.assertFalse(BallotClaim.objects.filter(voter_id=voter.voter_id).exists())

    def test_nota_markers_count_towards_the_seat_limit(self) -> None:
        voter = make_voter("VID-0003", zone=self.other_zone)

        with self.assertRaises(TooManySelectionsError):
            self._submit({str(self.other_zone.pk): ["NOTA_x", str(self.carol.pk)]}, voter=voter)

    def test_full_ballot_records_one_row_per_seat(self) -> None:
        receipt = self._submit({str(self.zone.pk): [str(self.alice.pk), str(self.bob.pk)]})

        self.assertEqual(receipt.nota_count, 0)
        self.assertEqual(
            set(Vote.objects.filter(voter=self.voter).values_list("candidate_id", flat=True)),
            {self.alice.pk, self.bob.pk},
        )
        self.voter.refresh_from_db()
        self.assertTrue(self.voter.has_voted)

    def test_empty_ballot_is_recorded_as_all_nota(self) -> None:
        receipt = self._submit({})

        self.assertEqual(receipt.nota_count, 2)
        votes = Vote.objects.filter(voter=self.voter)
        self.assertEqual(votes.count(), 2)
        self.assertTrue(all(v.candidate.is_nota for v in votes))
        self.assertEqual(Candidate.objects.filter(zone=self.zone, is_nota=True).count(), 1)

    def test_explicit_nota_marker_is_recorded_as_nota(self) -> None:
        receipt = self._submit({self.zone.pk: [f"NOTA_{self.zone.pk}", str(self.bob.pk)]})

        self.assertEqual(receipt.nota_count, 1)
        self.assertEqual(Vote.objects.filter(voter=self.voter, candidate__is_nota=True).count(), 1)
        self.assertEqual(Vote.objects.filter(voter=self.voter, candidate=self.bob).count(), 1)

    def test_second_submission_is_rejected_as_already_voted(self) -> None:
        self._submit({str(self.zone.pk): [str(self.alice.pk)]})

        with self.assertRaises(AlreadyVotedError):
            self._submit({str(self.zone.pk): [str(self.bob.pk)]})

        self.assertEqual(Vote.objects.filter(voter=self.voter).count(), 2)

    def test_lost_claim_race_is_reported_as_already_voted(self) -> None:
        with patch("core.elections_services.claim_ballot", side_effect=IntegrityError("duplicate key")):
            with self.assertRaises(AlreadyVotedError):
                self._submit({str(self.zone.pk): [str(self.alice.pk)]})

        self.assertFalse(Vote.objects.filter(voter=self.voter).exists())

    def test_election_must_be_active(self) -> None:
        self.election.status = Election.Status.closed
        self.election.save(update_fields=["status"])

        with self.assertRaises(ElectionUnavailableError):
            self._submit({str(self.zone.pk): [str(self.alice.pk)]})

    def test_voter_without_zone_assignment_is_rejected(self) -> None:
        voter = make_voter("VID-0004")

        with self.assertRaises(NoZoneAssignedError):
            self._submit({}, voter=voter)

    def test_inactive_zone_is_treated_as_unassigned(self) -> None:
        self.zone.is_active = False
        self.zone.save(update_fields=["is_active"])

        with self.assertRaises(NoZoneAssignedError):
            self._submit({str(self.zone.pk): [str(self.alice.pk)]})

    def test_ballot_for_another_zone_is_rejected(self) -> None:
        with self.assertRaises(ZoneMismatchError) as ctx:
            self._submit({str(self.other_zone.pk): [str(self.carol.pk)]})

        self.assertIn(self.zone.name, str(ctx.exception))

    def test_zone_mismatch_is_reported_before_candidate_errors(self) -> None:
        with self.assertRaises(ZoneMismatchError):
            self._submit({str(self.other_zone.pk): ["999999"]})

    def test_candidate_from_another_zone_is_invalid(self) -> None:
        with self.assertRaises(InvalidCandidateError):
            self._submit({str(self.zone.pk): [str(self.carol.pk)]})

    def test_unapproved_candidate_is_invalid_online(self) -> None:
        pending = make_candidate(zone=self.zone, name="Pending Pat", status=Candidate.Status.pending)

        with self.assertRaises(InvalidCandidateError) as ctx:
            self._submit({str(self.zone.pk): [str(pending.pk)]})

        self.assertIn("Pending Pat", str(ctx.exception))

    def test_unknown_and_non_numeric_candidates_are_invalid(self) -> None:
        for selection in ("424242", "alice"):
            with self.subTest(selection=selection):
                with self.assertRaises(InvalidCandidateError):
                    self._submit({str(self.zone.pk): [selection]})

    def test_candidate_id_beyond_integer_range_is_invalid(self) -> None:
        for selection in ("99999999999999999999999", "-99999999999999999999999"):
            with self.subTest(selection=selection):
                with self.assertRaises(InvalidCandidateError):
                    self._submit({str(self.zone.pk): [selection]})

        self.assertFalse(Vote.objects.filter(voter=self.voter).exists())

    def test_duplicate_candidate_is_rejected(self) -> None:
        with self.assertRaises(DuplicateSelectionError):
            self._submit({str(self.zone.pk): [str(self.alice.pk), str(self.alice.pk)]})

        self.assertFalse(Vote.objects.filter(voter=self.voter).exists())

    def test_selections_must_be_a_list_of_strings(self) -> None:
        for ballot in ({str(self.zone.pk): str(self.alice.pk)}, {str(self.zone.pk): [None]}, ["not", "a", "map"]):
            with self.subTest(ballot=ballot):
                with self.assertRaises(MalformedBallotError):
                    self._submit(ballot)

    def test_request_provenance_is_stored_on_each_row(self) -> None:
        submit_ballot(
            voter=self.voter,
            election_type=ElectionType.karobari,
            ballot={str(self.zone.pk): [str(self.alice.pk)]},
            provenance=RequestProvenance(ip_address="198.51.100.7", user_agent="Mozilla/5.0"),
        )

        rows = list(Vote.objects.filter(voter=self.voter).values_list("ip_address", "user_agent", "created_at"))
        self.assertEqual({(ip, ua) for ip, ua, _ in rows}, {("198.51.100.7", "Mozilla/5.0")})
        self.assertEqual(len({ts for _, _, ts in rows}), 1)

    def test_submission_writes_private_audit_entry_without_choices(self) -> None:
        self._submit({str(self.zone.pk): [str(self.alice.pk)]})

        entry = AuditLogEntry.objects.get(election=self.election, event_type="ballot_submitted")
        self.assertFalse(entry.is_public)
        self.assertEqual(entry.payload, {"zone_id": self.zone.pk, "selections": 2, "nota": 1})

    def test_database_failure_rolls_back_everything(self) -> None:
        with (
            patch.object(Vote.objects, "bulk_create", side_effect=DatabaseError("disk full")),
            self.assertLogs("core.elections_services", level="ERROR"),
        ):
            with self.assertRaises(PersistenceError) as ctx:
                self._submit({str(self.zone.pk): [str(self.alice.pk)]})

        self.assertNotIn("disk full", str(ctx.exception))
        self.assertFalse(Vote.objects.filter(voter=self.voter).exists())
        self.assertFalse(BallotClaim.objects.filter(voter_id=self.voter.voter_id).exists())
        self.voter.refresh_from_db()
        self.assertFalse(self.voter.has_voted)
