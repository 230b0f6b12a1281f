from hangouts.models.user import User
from hangouts.models.follow import Follow
from hangouts.models.friendship import FriendRequest, Friendship
from hangouts.models.chat import Chat, Message

__all__ = ["User", "Follow", "FriendRequest", "Friendship", "Chat", "Message"]
