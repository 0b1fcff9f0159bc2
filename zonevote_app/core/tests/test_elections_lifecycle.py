from __future__ import annotations

from django.test import TestCase

from core.elections_errors import ElectionStateError, ElectionUnavailableError
from core.elections_offline import submit_offline_ballot
from core.elections_services import close_election, declare_results, open_election, revoke_results, submit_ballot
from core.models import AuditLogEntry, Election, ElectionType
from core.tests.utils_test_data import make_election, make_voter, make_zone


class ElectionLifecycleTests(TestCase):
    def test_open_and_close_record_public_audit_entries_with_actor(self) -> None:
        election = make_election(status=Election.Status.draft)

        open_election(election=election, actor="returning_officer")
        self.assertEqual(election.status, Election.Status.active)

        close_election(election=election, actor="returning_officer")
        election.refresh_from_db()
        self.assertEqual(election.status, Election.Status.closed)

        events = list(
            AuditLogEntry.objects.filter(election=election, is_public=True).values_list("event_type", "payload")
        )
        self.assertEqual([e for e, _ in events], ["election_opened", "election_closed"])
        self.assertEqual(events[1][1]["actor"], "returning_officer")
        self.assertEqual((events[1][1]["online_voters"], events[1][1]["offline_voters"]), (0, 0))

    def test_only_one_active_election_per_type(self) -> None:
        make_election(status=Election.Status.active)
        second = make_election(status=Election.Status.draft)

        with self.assertRaises(ElectionStateError):
            open_election(election=second)

    def test_invalid_transitions_are_rejected(self) -> None:
        draft = make_election(status=Election.Status.draft)
        with self.assertRaises(ElectionStateError):
            close_election(election=draft)
        with self.assertRaises(ElectionStateError):
            declare_results(election=draft)

        closed = make_election(election_type=ElectionType.karobari, status=Election.Status.closed)
        with self.assertRaises(ElectionStateError):
            open_election(election=closed)

    def test_closed_election_accepts_no_ballots(self) -> None:
        election = make_election()
        zone = make_zone(code="A1")
        make_voter("VID-0001", zone=zone)
        voter = make_voter("VID-0002", zone=zone)
        close_election(election=election)

        with self.assertRaises(ElectionUnavailableError):
            submit_ballot(voter=voter, election_type=ElectionType.trustees, ballot={})
        with self.assertRaises(ElectionUnavailableError):
            submit_offline_ballot(
                voter_id="VID-0001",
                admin_identity="clerk",
                election_type=ElectionType.trustees,
                picks={},
            )

    def test_declare_and_revoke_results(self) -> None:
        election = make_election(status=Election.Status.closed)

        declare_results(election=election, actor="chair")
        election.refresh_from_db()
        self.assertIsNotNone(election.results_declared_at)

        revoke_results(election=election, actor="chair")
        election.refresh_from_db()
        self.assertIsNone(election.results_declared_at)

        revoke_results(election=election, actor="chair")
        self.assertEqual(
            list(AuditLogEntry.objects.filter(election=election).values_list("event_type", flat=True)),
            ["results_declared", "results_revoked"],
        )
