from fastapi import APIRouter

from hangouts.api.v1.endpoints import auth, users, friends, chat

api_router = APIRouter()

# Include routers
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(friends.router, prefix="/friends", tags=["friends"])
api_router.include_router(chat.router, prefix="/chats", tags=["chats"])
