"""Election views package.

All public view functions are re-exported here so that ``core.urls`` can
reference ``views_elections.<view_name>``.
"""

from core.views_elections.offline import (
    offline_ballot_delete,
    offline_ballot_list,
    offline_ballot_submit,
    offline_voter_lookup,
    offline_votes_merge,
)
from core.views_elections.results import (
    election_results,
    election_results_declaration,
    election_turnout,
    election_winners,
)
from core.views_elections.vote import election_ballot, election_vote_submit

__all__ = [
    "election_ballot",
    "election_results",
    "election_results_declaration",
    "election_turnout",
    "election_vote_submit",
    "election_winners",
    "offline_ballot_delete",
    "offline_ballot_list",
    "offline_ballot_submit",
    "offline_voter_lookup",
    "offline_votes_merge",
]
