from typing import Any, Callable, Dict

from hangouts.models.chat import Message as MessageModel
from hangouts.schemas.chat import Message

MessageRenderer = Callable[[MessageModel], Dict[str, Any]]


def render_message(message: MessageModel) -> Dict[str, Any]:
    """Default display form of a message: its public schema, JSON-ready.

    Expects the author relationship to be loaded.
    """
    return Message.model_validate(message).model_dump(mode="json")
