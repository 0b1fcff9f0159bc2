"""Administrator-entered ballots for voters without online access.

An offline ballot is identified by the typed VID only; no voter session is
involved. It shares the ballot claim with the online path, so a voter can
hold at most one ballot per election across both channels.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from core.elections_errors import (
    AlreadyVotedOnlineError,
    AmbiguousVoterIdError,
    DuplicateSelectionError,
    ElectionError,
    ElectionUnavailableError,
    InvalidCandidateError,
    MalformedBallotError,
    OfflineVoteAlreadyExistsError,
    OfflineVoteAlreadyMergedError,
    PersistenceError,
    TooManySelectionsError,
    VoterNotFoundError,
)
from core.elections_nota import is_nota_marker
from core.elections_services import (
    PERSISTENCE_FAILURE_MESSAGE,
    active_election_for_type,
    claim_ballot,
    record_audit_event,
)
from core.models import BallotClaim, Candidate, Election, OfflineVote, Vote, Voter, Zone
from core.results_cache import invalidate_election_results_on_commit

logger = logging.getLogger(__name__)

VIA_VOTER_PREFIX = "voter:"
ALL_NOTA_NOTE = "All NOTA"


@dataclass(frozen=True)
class DirectCandidate:
    candidate_id: int


@dataclass(frozen=True)
class ViaVoter:
    """A self-nominated candidate referenced through their own voter record."""

    voter_id: str


type CandidateRef = DirectCandidate | ViaVoter


def parse_candidate_ref(raw: object) -> CandidateRef | None:
    """Turn one submitted pick into a candidate reference.

    ``None`` means the seat was abstained: a blank value or a NOTA marker.
    """
    if raw is None:
        return None
    if isinstance(raw, int) and not isinstance(raw, bool):
        return DirectCandidate(candidate_id=raw)
    if not isinstance(raw, str):
        raise MalformedBallotError("Each pick must be a candidate id, a voter reference or a NOTA marker.")

    value = raw.strip()
    if not value or is_nota_marker(value):
        return None
    if value.startswith(VIA_VOTER_PREFIX):
        voter_id = value.removeprefix(VIA_VOTER_PREFIX).strip()
        if not voter_id:
            raise InvalidCandidateError(f"Pick {raw!r} does not name a voter.")
        return ViaVoter(voter_id=voter_id)
    if value.isdigit():
        return DirectCandidate(candidate_id=int(value))
    raise InvalidCandidateError(f"Pick {raw!r} is not a candidate reference.")


def offline_voting_enabled(election_type: str) -> bool:
    return election_type in set(settings.ELECTION_OFFLINE_VOTING_TYPES)


def _require_offline_voting(election_type: str) -> None:
    if not offline_voting_enabled(election_type):
        raise ElectionUnavailableError("Offline voting is not available for this election type.")


def voter_id_variants(raw_voter_id: str) -> list[str]:
    """Common spellings of a VID, exact input first.

    ``425`` also matches ``VID-0425``, ``VID-425``, ``V000425``, ``V0425`` and
    ``V425``. Only numbers that fit the four digit form get variants.
    """
    trimmed = raw_voter_id.strip()
    variants = [trimmed]
    digits = re.sub(r"\D", "", trimmed)
    if digits:
        num = int(digits)
        if num <= 9999:
            variants.extend(
                [f"VID-{num:04d}", f"VID-{num}", f"V{num:06d}", f"V{num:04d}", f"V{num}"]
            )
    return list(dict.fromkeys(v for v in variants if v))


def resolve_voter(raw_voter_id: str) -> Voter:
    trimmed = (raw_voter_id or "").strip()
    if not trimmed:
        raise VoterNotFoundError("A voter ID is required.")

    exact = Voter.objects.filter(voter_id=trimmed).first()
    if exact is not None:
        return exact

    matches = list(Voter.objects.filter(voter_id__in=voter_id_variants(trimmed)))
    if len(matches) > 1:
        raise AmbiguousVoterIdError(
            "Multiple voters match this VID. Please enter the full VID (e.g. VID-0425 or V000425)."
        )
    if not matches:
        raise VoterNotFoundError(f"No voter found with VID {trimmed!r}.")
    return matches[0]


@dataclass(frozen=True)
class OfflineVoterLookup:
    voter: Voter
    zone: Zone | None
    election: Election
    has_online_vote: bool
    has_offline_vote: bool

    @property
    def can_vote(self) -> bool:
        return not (self.has_online_vote or self.has_offline_vote)

    def as_dict(self) -> dict[str, object]:
        zone = None
        if self.zone is not None:
            zone = {
                "id": self.zone.pk,
                "code": self.zone.code,
                "name": self.zone.name,
                "nameLocal": self.zone.name_local,
                "seats": self.zone.seats,
            }
        return {
            "voter": {
                "voterId": self.voter.voter_id,
                "name": self.voter.name,
                "region": self.voter.region,
                "zone": zone,
            },
            "election": {
                "id": self.election.pk,
                "name": self.election.name,
                "type": self.election.election_type,
            },
            "hasOnlineVote": self.has_online_vote,
            "hasOfflineVote": self.has_offline_vote,
            "canVote": self.can_vote,
        }


def lookup_offline_voter(*, raw_voter_id: str, election_type: str) -> OfflineVoterLookup:
    _require_offline_voting(election_type)
    voter = resolve_voter(raw_voter_id)
    election = active_election_for_type(election_type)
    return OfflineVoterLookup(
        voter=voter,
        zone=voter.zone_for(election_type),
        election=election,
        has_online_vote=Vote.objects.filter(election=election, voter=voter).exists(),
        has_offline_vote=OfflineVote.objects.filter(election=election, voter_id=voter.voter_id).exists(),
    )


def _candidate_for_voter(*, ref: ViaVoter, election_type: str) -> Candidate:
    """Find the voter's own candidacy in their zone, creating it approved if absent."""
    nominee = Voter.objects.filter(voter_id=ref.voter_id).first()
    if nominee is None:
        raise InvalidCandidateError(f"Candidate voter {ref.voter_id!r} was not found.")
    zone = nominee.zone_for(election_type)
    if zone is None:
        raise InvalidCandidateError(f"Candidate voter {ref.voter_id} has no zone for this election.")

    existing = Candidate.objects.select_related("zone").filter(voter=nominee, zone=zone).first()
    if existing is not None:
        return existing

    try:
        with transaction.atomic():
            candidate = Candidate.objects.create(
                zone=zone,
                election_type=election_type,
                name=nominee.name,
                status=Candidate.Status.approved,
                voter=nominee,
            )
    except IntegrityError:
        return Candidate.objects.select_related("zone").get(voter=nominee, zone=zone)

    logger.info("Created candidate %s for voter %s in zone %s", candidate.pk, nominee.voter_id, zone)
    return candidate


def _resolve_ref(*, ref: CandidateRef, election_type: str) -> Candidate:
    match ref:
        case DirectCandidate(candidate_id=candidate_id):
            candidate = Candidate.objects.select_related("zone").filter(pk=candidate_id).first()
            if candidate is None or candidate.election_type != election_type:
                raise InvalidCandidateError(f"Candidate {candidate_id} is not part of this election.")
            return candidate
        case ViaVoter():
            return _candidate_for_voter(ref=ref, election_type=election_type)
    raise InvalidCandidateError(f"Unsupported candidate reference {ref!r}.")


def _existing_ballot_error(*, election: Election, voter: Voter) -> ElectionError | None:
    if Vote.objects.filter(election=election, voter=voter).exists():
        return AlreadyVotedOnlineError("This voter has already voted online. An offline vote cannot be recorded.")
    existing = OfflineVote.objects.filter(election=election, voter_id=voter.voter_id).first()
    if existing is not None:
        if existing.is_merged:
            return OfflineVoteAlreadyExistsError("This voter has already submitted an offline vote (merged).")
        return OfflineVoteAlreadyExistsError(
            "This voter already has an unmerged offline vote. Delete or merge it first."
        )
    claim = BallotClaim.objects.filter(election=election, voter_id=voter.voter_id).first()
    if claim is not None:
        if claim.channel == BallotClaim.Channel.online:
            return AlreadyVotedOnlineError("This voter has already voted online. An offline vote cannot be recorded.")
        return OfflineVoteAlreadyExistsError("This voter already has an offline vote.")
    return None


@dataclass(frozen=True)
class OfflineReceipt:
    election: Election
    voter: Voter
    rows: tuple[OfflineVote, ...]

    @property
    def all_nota(self) -> bool:
        return all(row.candidate_id is None for row in self.rows)

    @property
    def votes_submitted(self) -> int:
        return sum(1 for row in self.rows if row.candidate_id is not None)


def _submit_offline_in_transaction(
    *,
    voter_id: str,
    admin_identity: str,
    election_type: str,
    picks: Mapping[str, object],
    notes: str,
) -> OfflineReceipt:
    election = active_election_for_type(election_type)

    voter = Voter.objects.select_for_update().filter(voter_id=(voter_id or "").strip()).first()
    if voter is None:
        raise VoterNotFoundError("Voter not found with the provided VID.")

    error = _existing_ballot_error(election=election, voter=voter)
    if error is not None:
        raise error

    if not isinstance(picks, Mapping):
        raise MalformedBallotError("Picks must map ballot keys to candidate references (empty for all NOTA).")

    chosen: list[Candidate] = []
    seen_ids: set[int] = set()
    for key in sorted(picks, key=str):
        ref = parse_candidate_ref(picks[key])
        if ref is None:
            continue
        candidate = _resolve_ref(ref=ref, election_type=election_type)
        if candidate.is_nota:
            continue
        if not candidate.is_approved:
            logger.warning(
                "Offline ballot for voter %s selects candidate %s (%s) with status %s; allowing",
                voter.voter_id,
                candidate.pk,
                candidate.name,
                candidate.status,
            )
        if candidate.pk in seen_ids:
            raise DuplicateSelectionError(f"Candidate {candidate.name} was selected more than once.")
        seen_ids.add(candidate.pk)
        chosen.append(candidate)

    per_zone = Counter(candidate.zone_id for candidate in chosen)
    zones = {candidate.zone_id: candidate.zone for candidate in chosen}
    for zone_id, count in sorted(per_zone.items()):
        zone = zones[zone_id]
        if count > zone.seats:
            raise TooManySelectionsError(
                f"Zone {zone.name}: at most {zone.seats} selection(s) allowed, got {count}."
            )

    try:
        claim_ballot(election=election, voter_id=voter.voter_id, channel=BallotClaim.Channel.offline)
    except IntegrityError as exc:
        raise (
            _existing_ballot_error(election=election, voter=voter)
            or OfflineVoteAlreadyExistsError("This voter already has a recorded ballot.")
        ) from exc

    entered_at = timezone.now()
    notes = (notes or "").strip()
    if chosen:
        rows = OfflineVote.objects.bulk_create(
            [
                OfflineVote(
                    election=election,
                    voter_id=voter.voter_id,
                    candidate=candidate,
                    entered_by=admin_identity,
                    created_at=entered_at,
                    notes=notes,
                )
                for candidate in chosen
            ]
        )
    else:
        rows = [
            OfflineVote.objects.create(
                election=election,
                voter_id=voter.voter_id,
                candidate=None,
                entered_by=admin_identity,
                created_at=entered_at,
                notes=f"{notes} (all NOTA)" if notes else ALL_NOTA_NOTE,
            )
        ]

    record_audit_event(
        election=election,
        event_type="offline_ballot_recorded",
        payload={"voter_id": voter.voter_id, "selections": len(chosen)},
        is_public=False,
        actor=admin_identity,
    )
    invalidate_election_results_on_commit(election.pk)

    return OfflineReceipt(election=election, voter=voter, rows=tuple(rows))


def submit_offline_ballot(
    *,
    voter_id: str,
    admin_identity: str,
    election_type: str,
    picks: Mapping[str, object],
    notes: str = "",
) -> OfflineReceipt:
    """Record an administrator-entered ballot for ``voter_id``.

    Each pick is a candidate id, ``voter:<VID>`` for a self-nominated voter
    or a NOTA marker. With no real picks a single placeholder row marks the
    voter as processed. Candidates that are not approved are logged and
    allowed. The rows and the ballot claim commit together or not at all.
    """
    _require_offline_voting(election_type)

    try:
        with transaction.atomic():
            receipt = _submit_offline_in_transaction(
                voter_id=voter_id,
                admin_identity=admin_identity,
                election_type=election_type,
                picks=picks,
                notes=notes,
            )
    except ElectionError:
        raise
    except DatabaseError as exc:
        logger.exception("Offline ballot commit failed for voter %s (%s)", voter_id, election_type)
        raise PersistenceError(PERSISTENCE_FAILURE_MESSAGE) from exc

    logger.info(
        "Recorded offline ballot: election=%s voter=%s votes=%d entered_by=%s",
        receipt.election.pk,
        receipt.voter.voter_id,
        receipt.votes_submitted,
        admin_identity,
    )
    return receipt


@dataclass(frozen=True)
class OfflineBallot:
    voter_id: str
    voter_name: str
    entered_by: str
    created_at: datetime
    notes: str
    is_merged: bool
    merged_at: datetime | None
    candidates: tuple[Candidate, ...]

    @property
    def all_nota(self) -> bool:
        return not self.candidates

    def as_dict(self) -> dict[str, object]:
        return {
            "voterId": self.voter_id,
            "voterName": self.voter_name,
            "enteredBy": self.entered_by,
            "createdAt": self.created_at.isoformat(),
            "notes": self.notes,
            "isMerged": self.is_merged,
            "mergedAt": self.merged_at.isoformat() if self.merged_at else None,
            "allNota": self.all_nota,
            "candidates": [
                {"id": c.pk, "name": c.name, "zone": {"id": c.zone_id, "code": c.zone.code}}
                for c in self.candidates
            ],
        }


def list_offline_ballots(
    *,
    election: Election,
    is_merged: bool | None = None,
    voter_id_contains: str = "",
) -> list[OfflineBallot]:
    """Offline rows grouped into one ballot per voter, newest first."""
    rows = OfflineVote.objects.filter(election=election).select_related("candidate__zone")
    if is_merged is not None:
        rows = rows.filter(is_merged=is_merged)
    if voter_id_contains.strip():
        rows = rows.filter(voter_id__icontains=voter_id_contains.strip())

    grouped: dict[str, list[OfflineVote]] = {}
    for row in rows.order_by("-created_at", "voter_id", "id"):
        grouped.setdefault(row.voter_id, []).append(row)

    names = dict(Voter.objects.filter(voter_id__in=grouped.keys()).values_list("voter_id", "name"))

    ballots: list[OfflineBallot] = []
    for vid, voter_rows in grouped.items():
        first = voter_rows[0]
        ballots.append(
            OfflineBallot(
                voter_id=vid,
                voter_name=names.get(vid, ""),
                entered_by=first.entered_by,
                created_at=first.created_at,
                notes=first.notes,
                is_merged=all(row.is_merged for row in voter_rows),
                merged_at=max((row.merged_at for row in voter_rows if row.merged_at), default=None),
                candidates=tuple(row.candidate for row in voter_rows if row.candidate is not None),
            )
        )
    return ballots


@transaction.atomic
def delete_offline_ballot(*, election: Election, voter_id: str, actor: str) -> int:
    """Remove a voter's unmerged offline ballot so a corrected one can be entered."""
    vid = (voter_id or "").strip()
    rows = list(OfflineVote.objects.select_for_update().filter(election=election, voter_id=vid))
    if not rows:
        raise VoterNotFoundError(f"No offline ballot is recorded for voter {vid!r}.")
    if any(row.is_merged for row in rows):
        raise OfflineVoteAlreadyMergedError("This offline ballot has already been merged and cannot be deleted.")

    deleted, _ = OfflineVote.objects.filter(pk__in=[row.pk for row in rows]).delete()
    BallotClaim.objects.filter(election=election, voter_id=vid, channel=BallotClaim.Channel.offline).delete()

    record_audit_event(
        election=election,
        event_type="offline_ballot_deleted",
        payload={"voter_id": vid, "rows": deleted},
        is_public=False,
        actor=actor,
    )
    invalidate_election_results_on_commit(election.pk)
    logger.info("Deleted offline ballot: election=%s voter=%s rows=%d by=%s", election.pk, vid, deleted, actor)
    return deleted


@dataclass(frozen=True)
class MergeReport:
    election_id: int
    voters_merged: int
    rows_merged: int

    def as_dict(self) -> dict[str, object]:
        return {
            "electionId": self.election_id,
            "votersMerged": self.voters_merged,
            "rowsMerged": self.rows_merged,
        }


@transaction.atomic
def merge_offline_votes(*, election: Election, actor: str) -> MergeReport:
    """Mark every pending offline row as merged.

    Offline rows are counted by the tally whether or not they are merged, so
    this only records that the entries were reviewed and locks them against
    deletion.
    """
    pending = list(
        OfflineVote.objects.select_for_update()
        .filter(election=election, is_merged=False)
        .values_list("pk", "voter_id")
    )
    merged_at = timezone.now()
    rows_merged = OfflineVote.objects.filter(pk__in=[pk for pk, _ in pending]).update(
        is_merged=True, merged_at=merged_at
    )
    voters_merged = len({vid for _, vid in pending})

    report = MergeReport(election_id=int(election.pk), voters_merged=voters_merged, rows_merged=rows_merged)
    if rows_merged:
        record_audit_event(
            election=election,
            event_type="offline_votes_merged",
            payload={"voters": voters_merged, "rows": rows_merged, "merged_at": merged_at.isoformat()},
            is_public=True,
            actor=actor,
        )
        invalidate_election_results_on_commit(election.pk)

    logger.info(
        "Merged offline votes: election=%s voters=%d rows=%d by=%s",
        election.pk,
        voters_merged,
        rows_merged,
        actor,
    )
    return report
