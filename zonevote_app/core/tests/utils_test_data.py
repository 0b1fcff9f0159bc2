from django.contrib.auth.models import Permission, User
from django.utils import timezone

from core.models import (
    Candidate,
    Election,
    ElectionType,
    OfflineVote,
    Vote,
    Voter,
    VoterZoneAssignment,
    Zone,
)


def make_election(
    *,
    election_type: str = ElectionType.trustees,
    status: str = Election.Status.active,
    name: str = "",
) -> Election:
    return Election.objects.create(
        name=name or f"{election_type} election",
        election_type=election_type,
        status=status,
    )


def make_zone(
    *,
    code: str,
    seats: int = 1,
    election_type: str = ElectionType.trustees,
    sort_order: int = 0,
    is_active: bool = True,
) -> Zone:
    return Zone.objects.create(
        election_type=election_type,
        code=code,
        name=f"Zone {code}",
        name_local=f"{code} (local)",
        seats=seats,
        sort_order=sort_order,
        is_active=is_active,
    )


def make_candidate(
    *,
    zone: Zone,
    name: str,
    status: str = Candidate.Status.approved,
    voter: Voter | None = None,
) -> Candidate:
    return Candidate.objects.create(
        zone=zone,
        election_type=zone.election_type,
        name=name,
        status=status,
        voter=voter,
    )


def make_voter(voter_id: str, *, zone: Zone | None = None, name: str = "", region: str = "") -> Voter:
    """Create a voter, assigned to ``zone`` for the zone's election type when given."""
    voter = Voter.objects.create(voter_id=voter_id, name=name or f"Voter {voter_id}", region=region)
    if zone is not None:
        VoterZoneAssignment.objects.create(voter=voter, election_type=zone.election_type, zone=zone)
    return voter


def cast_online_votes(*, election: Election, voter: Voter, candidates: list[Candidate]) -> list[Vote]:
    """Write vote rows directly, bypassing validation, for tally fixtures."""
    now = timezone.now()
    return [
        Vote.objects.create(election=election, voter=voter, candidate=candidate, created_at=now)
        for candidate in candidates
    ]


def cast_offline_votes(
    *,
    election: Election,
    voter_id: str,
    candidates: list[Candidate | None],
    is_merged: bool = False,
) -> list[OfflineVote]:
    now = timezone.now()
    return [
        OfflineVote.objects.create(
            election=election,
            voter_id=voter_id,
            candidate=candidate,
            entered_by="fixture",
            created_at=now,
            is_merged=is_merged,
            merged_at=now if is_merged else None,
        )
        for candidate in candidates
    ]


def make_staff_user(username: str, *permissions: str) -> User:
    """Create a user holding ``app_label.codename`` permissions."""
    user = User.objects.create_user(username=username, password="unused-password")
    for perm in permissions:
        app_label, codename = perm.split(".", 1)
        user.user_permissions.add(Permission.objects.get(content_type__app_label=app_label, codename=codename))
    return user


def login_as_voter(client, voter_id: str) -> None:
    session = client.session
    session["_voter_id"] = voter_id
    session.save()
