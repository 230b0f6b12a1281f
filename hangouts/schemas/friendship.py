from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import List, Optional

from hangouts.schemas.user import UserSummary


class FollowStatus(BaseModel):
    follower_id: int
    followee_id: int
    is_following: bool


class FollowList(BaseModel):
    users: List[UserSummary]
    total_count: int


class FriendRequestCreate(BaseModel):
    target_id: int


class FriendRequestDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: int
    target_id: int
    created_at: Optional[datetime] = None
    requester: UserSummary
    target: UserSummary


class FriendsList(BaseModel):
    friends: List[UserSummary]
    total_count: int


class PendingRequests(BaseModel):
    sent_requests: List[FriendRequestDetail]
    received_requests: List[FriendRequestDetail]
    total_sent: int
    total_received: int


class ActionResult(BaseModel):
    message: str
