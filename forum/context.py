from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from forum.clients import (
    ChannelClient,
    FollowClient,
    LocalChannelClient,
    LocalFollowClient,
    LocalTopicClient,
    TopicClient,
    UserClient,
    user_client,
)


@dataclass
class CallContext:
    """
    Everything one action invocation needs: the request's session, the
    caller (resolved user record and raw token) and a client for every
    other service it may call.
    """

    db: AsyncSession
    user: dict | None = None
    token: str | None = None
    users: UserClient = field(init=False, repr=False)
    channels: ChannelClient = field(init=False, repr=False)
    topics: TopicClient = field(init=False, repr=False)
    follows: FollowClient = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.users = user_client(self)
        self.channels = LocalChannelClient(self)
        self.topics = LocalTopicClient(self)
        self.follows = LocalFollowClient(self)

    @property
    def user_id(self) -> int | None:
        return self.user["id"] if self.user else None
