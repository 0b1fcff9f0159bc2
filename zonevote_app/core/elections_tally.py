"""Result tabulation: merge online and offline counts into ranked zone results.

Everything here is derived from the persisted ``Vote`` and ``OfflineVote``
rows on every call. There are no running counters, so tabulating twice with
no intervening writes yields identical output, and declaring or revoking
results can never drift from the underlying rows.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from django.conf import settings
from django.db.models import Count

from core.elections_errors import ElectionUnavailableError
from core.models import Candidate, Election, OfflineVote, Vote, Voter, VoterZoneAssignment, Zone

logger = logging.getLogger(__name__)


def excluded_voter_prefix() -> str:
    return str(settings.ELECTION_TEST_VOTER_PREFIX or "")


def _online_votes(election: Election):
    qs = Vote.objects.filter(election=election)
    prefix = excluded_voter_prefix()
    if prefix:
        qs = qs.exclude(voter__voter_id__startswith=prefix)
    return qs


def _offline_votes(election: Election):
    qs = OfflineVote.objects.filter(election=election)
    prefix = excluded_voter_prefix()
    if prefix:
        qs = qs.exclude(voter_id__startswith=prefix)
    return qs


@dataclass(frozen=True)
class CandidateResult:
    id: int
    name: str
    votes: int
    online_votes: int
    offline_votes: int
    rank: int
    is_nota: bool

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "votes": self.votes,
            "onlineVotes": self.online_votes,
            "offlineVotes": self.offline_votes,
            "rank": self.rank,
            "isNota": self.is_nota,
        }


@dataclass(frozen=True)
class ZoneResult:
    zone_id: int
    code: str
    name: str
    name_local: str
    seats: int
    candidates: tuple[CandidateResult, ...]
    winners: tuple[CandidateResult, ...]

    @property
    def vacant_seats(self) -> int:
        return max(0, self.seats - len(self.winners))

    @property
    def nota_leads(self) -> bool:
        return bool(self.candidates) and self.candidates[0].is_nota

    def as_dict(self) -> dict[str, object]:
        return {
            "zone": {
                "id": self.zone_id,
                "code": self.code,
                "name": self.name,
                "nameLocal": self.name_local,
                "seats": self.seats,
            },
            "candidates": [c.as_dict() for c in self.candidates],
            "winners": [c.as_dict() for c in self.winners],
            "vacantSeats": self.vacant_seats,
            "notaLeads": self.nota_leads,
        }


@dataclass(frozen=True)
class TallyResult:
    election_type: str
    revealed: bool
    election_id: int | None = None
    election_name: str = ""
    real_winners_only: bool = False
    zones: tuple[ZoneResult, ...] = field(default_factory=tuple)

    def zone(self, zone_id: int) -> ZoneResult | None:
        for zone in self.zones:
            if zone.zone_id == zone_id:
                return zone
        return None

    def as_dict(self) -> dict[str, object]:
        if not self.revealed:
            return {"revealed": False, "electionType": self.election_type, "zones": []}
        return {
            "revealed": True,
            "electionType": self.election_type,
            "election": {"id": self.election_id, "name": self.election_name},
            "realWinnersOnly": self.real_winners_only,
            "zones": [z.as_dict() for z in self.zones],
        }


def rank_candidates(
    *,
    candidates: list[Candidate],
    online_counts: Counter[int],
    offline_counts: Counter[int],
) -> tuple[CandidateResult, ...]:
    """Order by merged count descending; equal counts fall back to candidate id."""
    ordered = sorted(
        candidates,
        key=lambda c: (-(online_counts[c.pk] + offline_counts[c.pk]), c.pk),
    )
    return tuple(
        CandidateResult(
            id=int(c.pk),
            name=c.name,
            votes=online_counts[c.pk] + offline_counts[c.pk],
            online_votes=online_counts[c.pk],
            offline_votes=offline_counts[c.pk],
            rank=position,
            is_nota=bool(c.is_nota),
        )
        for position, c in enumerate(ordered, start=1)
    )


def select_winners(
    *, ranked: tuple[CandidateResult, ...], seats: int, real_winners_only: bool
) -> tuple[CandidateResult, ...]:
    # NOTA keeps its rank; with real_winners_only a seat it wins stays vacant.
    top = ranked[: max(0, seats)]
    if real_winners_only:
        return tuple(c for c in top if not c.is_nota)
    return top


def tally_election(
    *,
    election: Election,
    reveal: bool = True,
    real_winners_only: bool = False,
) -> TallyResult:
    if not reveal:
        return TallyResult(election_type=election.election_type, revealed=False)

    online_counts: Counter[int] = Counter(
        {
            int(row["candidate_id"]): int(row["n"])
            for row in _online_votes(election).values("candidate_id").annotate(n=Count("id"))
        }
    )
    offline_counts: Counter[int] = Counter(
        {
            int(row["candidate_id"]): int(row["n"])
            for row in _offline_votes(election)
            .filter(candidate__isnull=False)
            .values("candidate_id")
            .annotate(n=Count("id"))
        }
    )

    candidate_ids = set(online_counts) | set(offline_counts)
    candidates = Candidate.objects.select_related("zone").filter(pk__in=candidate_ids)

    candidates_by_zone: dict[int, list[Candidate]] = {}
    zones_by_id: dict[int, Zone] = {}
    for candidate in candidates:
        zones_by_id[candidate.zone_id] = candidate.zone
        candidates_by_zone.setdefault(candidate.zone_id, []).append(candidate)

    zone_results: list[ZoneResult] = []
    for zone in sorted(zones_by_id.values(), key=lambda z: (z.sort_order, z.code, z.pk)):
        ranked = rank_candidates(
            candidates=candidates_by_zone[zone.pk],
            online_counts=online_counts,
            offline_counts=offline_counts,
        )
        zone_results.append(
            ZoneResult(
                zone_id=int(zone.pk),
                code=zone.code,
                name=zone.name,
                name_local=zone.name_local,
                seats=int(zone.seats),
                candidates=ranked,
                winners=select_winners(ranked=ranked, seats=int(zone.seats), real_winners_only=real_winners_only),
            )
        )

    return TallyResult(
        election_type=election.election_type,
        revealed=True,
        election_id=int(election.pk),
        election_name=election.name,
        real_winners_only=real_winners_only,
        zones=tuple(zone_results),
    )


def current_election_for_type(election_type: str) -> Election:
    election = Election.objects.current_for_type(election_type)
    if election is None:
        raise ElectionUnavailableError("No election of this type has been held yet.")
    return election


def tally(election_type: str, *, reveal: bool = True, real_winners_only: bool = False) -> TallyResult:
    return tally_election(
        election=current_election_for_type(election_type),
        reveal=reveal,
        real_winners_only=real_winners_only,
    )


def public_winners(election_type: str) -> dict[str, object]:
    """Winners feed for the public site; empty until results are declared."""
    election = Election.objects.current_for_type(election_type)
    declared = election is not None and election.results_declared_at is not None
    if not declared:
        return {"declared": False, "electionType": election_type, "zones": []}

    result = tally_election(election=election, reveal=True)
    return {
        "declared": True,
        "declaredAt": election.results_declared_at.isoformat(),
        "electionType": election_type,
        "election": {"id": election.pk, "name": election.name},
        "zones": [
            {
                "zone": z.as_dict()["zone"],
                "winners": [w.as_dict() for w in z.winners],
                "notaLeads": z.nota_leads,
            }
            for z in result.zones
        ],
    }


@dataclass(frozen=True)
class ZoneTurnout:
    zone_id: int
    code: str
    name: str
    eligible_voters: int
    online_voters: int
    offline_voters: int

    @property
    def voted(self) -> int:
        return self.online_voters + self.offline_voters

    @property
    def turnout_percent(self) -> float:
        if not self.eligible_voters:
            return 0.0
        return round(self.voted * 100 / self.eligible_voters, 2)

    def as_dict(self) -> dict[str, object]:
        return {
            "zone": {"id": self.zone_id, "code": self.code, "name": self.name},
            "eligibleVoters": self.eligible_voters,
            "onlineVoters": self.online_voters,
            "offlineVoters": self.offline_voters,
            "voted": self.voted,
            "turnoutPercent": self.turnout_percent,
        }


@dataclass(frozen=True)
class TurnoutReport:
    election_id: int
    zones: tuple[ZoneTurnout, ...]
    warnings: tuple[str, ...]

    def as_dict(self) -> dict[str, object]:
        return {
            "election": {"id": self.election_id},
            "zones": [z.as_dict() for z in self.zones],
            "warnings": list(self.warnings),
        }


def zone_turnout(*, election: Election) -> TurnoutReport:
    """Distinct voters per zone counted from the vote rows themselves.

    The ``has_voted`` flag is only cross-checked: disagreement with the rows is
    reported as a warning, never trusted as the count.
    """
    prefix = excluded_voter_prefix()

    assignments = VoterZoneAssignment.objects.filter(election_type=election.election_type)
    if prefix:
        assignments = assignments.exclude(voter__voter_id__startswith=prefix)
    zone_by_voter_pk: dict[int, int] = {}
    zone_by_vid: dict[str, int] = {}
    for voter_pk, vid, zone_id in assignments.values_list("voter_id", "voter__voter_id", "zone_id"):
        zone_by_voter_pk[int(voter_pk)] = int(zone_id)
        zone_by_vid[str(vid)] = int(zone_id)

    online_voter_pks = set(_online_votes(election).values_list("voter_id", flat=True).distinct())
    offline_vids = set(_offline_votes(election).values_list("voter_id", flat=True).distinct())

    eligible = Counter(zone_by_voter_pk.values())
    online = Counter(zone_by_voter_pk[pk] for pk in online_voter_pks if pk in zone_by_voter_pk)
    offline = Counter(zone_by_vid[vid] for vid in offline_vids if vid in zone_by_vid)

    warnings: list[str] = []

    unassigned_online = sorted(
        Voter.objects.filter(pk__in=online_voter_pks - set(zone_by_voter_pk)).values_list("voter_id", flat=True)
    )
    for vid in unassigned_online:
        warnings.append(f"Voter {vid} has online votes but no zone assignment for this election type.")
    for vid in sorted(offline_vids - set(zone_by_vid)):
        warnings.append(f"Voter {vid} has offline votes but no zone assignment for this election type.")

    unflagged = Voter.objects.filter(pk__in=online_voter_pks, has_voted=False).values_list("voter_id", flat=True)
    for vid in sorted(unflagged):
        warnings.append(f"Voter {vid} has online votes but is not flagged as having voted.")

    flagged_without_votes = (
        Voter.objects.filter(pk__in=zone_by_voter_pk.keys(), has_voted=True)
        .exclude(votes__election=election)
        .values_list("voter_id", flat=True)
    )
    for vid in sorted(flagged_without_votes):
        warnings.append(f"Voter {vid} is flagged as having voted but has no online votes.")

    for message in warnings:
        logger.warning("Turnout integrity check (election %s): %s", election.pk, message)

    zones = Zone.objects.filter(election_type=election.election_type, is_active=True).order_by(
        "sort_order", "code", "id"
    )
    return TurnoutReport(
        election_id=int(election.pk),
        zones=tuple(
            ZoneTurnout(
                zone_id=int(z.pk),
                code=z.code,
                name=z.name,
                eligible_voters=eligible[z.pk],
                online_voters=online[z.pk],
                offline_voters=offline[z.pk],
            )
            for z in zones
        ),
        warnings=tuple(warnings),
    )
