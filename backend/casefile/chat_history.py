"""
Append-only chat history per matter, backed by Firestore.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import List, Optional, Tuple

from google.api_core import exceptions as gcloud_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .config import Settings
from .errors import ChatHistoryError
from .models.documents import ChatTurn, utcnow

logger = logging.getLogger(__name__)


class ChatHistory(ABC):

    @abstractmethod
    def append_turn_pair(
        self, matter_id: str, question: str, answer: str, user_id: Optional[str] = None
    ) -> Tuple[ChatTurn, ChatTurn]:
        """Persist the user turn and the assistant turn together, or neither."""

    @abstractmethod
    def list_turns(self, matter_id: str, limit: int = 100) -> List[ChatTurn]:
        """Turns of a matter in creation order."""


def build_turn_pair(
    matter_id: str, question: str, answer: str, user_id: Optional[str]
) -> Tuple[ChatTurn, ChatTurn]:
    asked_at = utcnow()
    user_turn = ChatTurn(
        id=str(uuid.uuid4()),
        matter_id=matter_id,
        role="user",
        content=question,
        user_id=user_id,
        created_at=asked_at,
    )
    # keeps the pair ordered even when both land in the same clock tick
    assistant_turn = ChatTurn(
        id=str(uuid.uuid4()),
        matter_id=matter_id,
        role="assistant",
        content=answer,
        user_id=None,
        created_at=asked_at + timedelta(microseconds=1),
    )
    return user_turn, assistant_turn


class FirestoreChatHistory(ChatHistory):

    def __init__(self, db: firestore.Client, settings: Settings):
        self.db = db
        self.collection = db.collection(settings.chat_collection)

    def append_turn_pair(
        self, matter_id: str, question: str, answer: str, user_id: Optional[str] = None
    ) -> Tuple[ChatTurn, ChatTurn]:
        user_turn, assistant_turn = build_turn_pair(matter_id, question, answer, user_id)

        batch = self.db.batch()
        for turn in (user_turn, assistant_turn):
            batch.create(self.collection.document(turn.id), turn.model_dump(mode="json"))
        try:
            batch.commit()
        except gcloud_exceptions.GoogleAPICallError as e:
            raise ChatHistoryError(f"Saving chat turns for matter {matter_id} failed: {e}") from e
        return user_turn, assistant_turn

    def list_turns(self, matter_id: str, limit: int = 100) -> List[ChatTurn]:
        query = (
            self.collection
            .where(filter=FieldFilter("matter_id", "==", matter_id))
            .order_by("created_at")
            .limit(limit)
        )
        try:
            return [ChatTurn.model_validate(snapshot.to_dict()) for snapshot in query.stream()]
        except gcloud_exceptions.GoogleAPICallError as e:
            raise ChatHistoryError(f"Reading chat history for matter {matter_id} failed: {e}") from e
