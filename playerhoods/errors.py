"""Typed errors raised by match operations and translated at the route boundary."""


class MatchError(Exception):
    """Base error for match and roster operations."""

    kind = 'match_error'
    status_code = 400

    def __init__(self, message='', kind=None, match_id=None, participant_id=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if kind:
            self.kind = kind
        self.match_id = match_id
        self.participant_id = participant_id

    def to_dict(self):
        data = {'error': self.message, 'kind': self.kind}
        if self.match_id is not None:
            data['match_id'] = self.match_id
        if self.participant_id is not None:
            data['participant_id'] = self.participant_id
        return data


class Unauthorized(MatchError):
    """Actor lacks permission for the requested mutation."""

    kind = 'unauthorized'
    status_code = 403


class NotFound(MatchError):
    """Match, participant or guest reference does not resolve."""

    kind = 'not_found'
    status_code = 404


class MatchNotActive(MatchError):
    """Mutation attempted on a cancelled match."""

    kind = 'match_not_active'
    status_code = 409


class AlreadyParticipating(MatchError):
    kind = 'already_participating'
    status_code = 409


class AlreadyInMatch(MatchError):
    kind = 'already_in_match'
    status_code = 409


class InvalidState(MatchError):
    """Requested transition is not legal from the current state."""

    kind = 'invalid_state'
    status_code = 409


class ValidationError(MatchError):
    kind = 'validation_error'
    status_code = 400


class StoreFailure(MatchError):
    """Underlying atomic store operation failed. Not retried here."""

    kind = 'store_failure'
    status_code = 503
