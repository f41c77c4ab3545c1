from dataclasses import dataclass
from fastapi import Header

ANONYMOUS_USER = "anonymous"


@dataclass(frozen=True)
class UserContext:
    """The acting user, used as order owner and as the audit identity."""
    username: str


def get_current_user(x_user_id: str = Header(ANONYMOUS_USER, max_length=64)) -> UserContext:
    # Authentication happens upstream; the gateway forwards the caller's id in X-User-Id
    return UserContext(username=x_user_id.strip() or ANONYMOUS_USER)
