"""Run-scoped cache of resolved tracker users."""

from tracker_mirror.models.entities import User


class UserCache:
    """Maps tracker user keys to the User resolved during one run.

    A fresh cache is created for every import run and discarded afterwards,
    so each user is looked up and written at most once per run.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}

    def get(self, user_key: str) -> User | None:
        return self._users.get(user_key)

    def put(self, user: User) -> User:
        self._users[user.id] = user
        return user

    def __contains__(self, user_key: object) -> bool:
        return user_key in self._users

    def __len__(self) -> int:
        return len(self._users)
