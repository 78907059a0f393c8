"""Formation evaluator: headcount x time x venue readiness."""
from dataclasses import dataclass

FINALIZED = 'finalized'
SIGNAL_TIME = 'time'
SIGNAL_VENUE = 'venue'


@dataclass(frozen=True)
class FormationStatus:
    is_full: bool
    is_formed: bool
    missing_signals: tuple
    headcount: int
    required_count: int

    def to_dict(self):
        return {
            'is_full': self.is_full,
            'is_formed': self.is_formed,
            'missing_signals': list(self.missing_signals),
            'headcount': self.headcount,
            'required_count': self.required_count,
        }


def evaluate_formation(required_count, confirmed_count, guest_count,
                       time_status, venue_status, count_guests=True):
    """Derive readiness from the current counts and finalization flags.

    ``missing_signals`` lists the tentative flags for messaging only; callers
    must branch on ``is_full`` / ``is_formed``.
    """
    headcount = int(confirmed_count) + (int(guest_count) if count_guests else 0)
    is_full = headcount >= int(required_count)

    missing = []
    if time_status != FINALIZED:
        missing.append(SIGNAL_TIME)
    if venue_status != FINALIZED:
        missing.append(SIGNAL_VENUE)

    return FormationStatus(
        is_full=is_full,
        is_formed=is_full and not missing,
        missing_signals=tuple(missing),
        headcount=headcount,
        required_count=int(required_count),
    )
