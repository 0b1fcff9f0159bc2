"""Per-zone NOTA ("none of the above") pseudo-candidates."""

from __future__ import annotations

import logging

from django.conf import settings
from django.db import IntegrityError, transaction

from core.models import Candidate, Zone

logger = logging.getLogger(__name__)


def nota_marker_prefix() -> str:
    return str(settings.ELECTION_NOTA_MARKER_PREFIX)


def is_nota_marker(selection: object) -> bool:
    return isinstance(selection, str) and selection.startswith(nota_marker_prefix())


def nota_marker_for_zone(zone: Zone) -> str:
    """The marker a ballot form sends for an abstained seat in ``zone``."""
    return f"{nota_marker_prefix()}{zone.pk}"


def get_or_create_nota_candidate(*, zone: Zone) -> Candidate:
    """Return the zone's NOTA candidate, creating it on first use.

    Concurrent callers converge on one row: the partial unique constraint on
    (zone) where is_nota rejects the losing insert, which then re-reads.
    """
    existing = Candidate.objects.filter(zone=zone, is_nota=True).first()
    if existing is not None:
        return existing

    try:
        with transaction.atomic():
            nota = Candidate.objects.create(
                zone=zone,
                election_type=zone.election_type,
                name=settings.ELECTION_NOTA_CANDIDATE_NAME,
                status=Candidate.Status.approved,
                is_nota=True,
            )
    except IntegrityError:
        return Candidate.objects.get(zone=zone, is_nota=True)

    logger.info("Created NOTA candidate %s for zone %s", nota.pk, zone)
    return nota


def get_or_create_nota_candidate_id(*, zone_id: int, election_type: str) -> int:
    zone = Zone.objects.get(pk=zone_id, election_type=election_type)
    return int(get_or_create_nota_candidate(zone=zone).pk)
