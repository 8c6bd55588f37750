"""
Follow graph errors.
Each error carries a stable code and the HTTP status the API maps it to.
"""


class FollowError(Exception):
    code = 'follow_error'
    status_code = 400
    message = 'Follow operation failed'

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self) -> dict:
        return {'detail': self.message, 'code': self.code}


class SelfFollowRejected(FollowError):
    code = 'self_follow_rejected'
    status_code = 422
    message = 'You cannot follow yourself'


class DuplicateRelationship(FollowError):
    code = 'already_following'
    status_code = 409
    message = 'You already follow this user'


class RelationshipNotFound(FollowError):
    code = 'not_following'
    status_code = 404
    message = 'You do not follow this user'


class UserNotFound(FollowError):
    code = 'user_not_found'
    status_code = 404
    message = 'User not found'


class TooManyUserIds(FollowError):
    code = 'too_many_user_ids'
    status_code = 422
    message = 'Maximum 100 user IDs allowed per request'
