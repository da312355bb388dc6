"""
Question answering over a matter's indexed documents.
"""

import logging
from typing import List, Optional

from .catalog import DocumentCatalog
from .chat_history import ChatHistory
from .errors import ChatHistoryError, InvalidInput
from .index.manager import IndexBackend
from .models.documents import ChatTurn
from .models.indexing import AnswerStatus, ChatAnswer

logger = logging.getLogger(__name__)

NO_STORE_MESSAGE = "No index exists for this matter yet. Upload files first."
NOT_INDEXED_MESSAGE = "Indexing is in progress. The matter's files are not searchable yet."


class QueryAnsweringService:

    def __init__(self, index_backend: IndexBackend, catalog: DocumentCatalog, chat_history: ChatHistory):
        self.index_backend = index_backend
        self.catalog = catalog
        self.chat_history = chat_history

    def ask(self, matter_id: str, question: str, user_id: Optional[str] = None) -> ChatAnswer:
        """
        Answer a question about a matter.

        Returns a not_ready answer when the matter has no store or no
        searchable document yet. Raises QueryError when the external service
        fails. Chat history is written after the answer is obtained and a
        failure there never hides the answer.
        """
        question = (question or "").strip()
        if not question:
            raise InvalidInput("message is required")

        store = self.index_backend.get_store(matter_id)
        if store is None:
            return ChatAnswer(status=AnswerStatus.NOT_READY, message=NO_STORE_MESSAGE)

        if not any(document.searchable for document in self.catalog.list_documents(matter_id)):
            return ChatAnswer(status=AnswerStatus.NOT_READY, message=NOT_INDEXED_MESSAGE)

        answer = self.index_backend.query(store, question)

        try:
            user_turn, assistant_turn = self.chat_history.append_turn_pair(matter_id, question, answer, user_id)
        except ChatHistoryError as e:
            logger.error(f"Answer for matter {matter_id} delivered without saving chat history: {e}")
            return ChatAnswer(status=AnswerStatus.ANSWERED, answer=answer)

        return ChatAnswer(
            status=AnswerStatus.ANSWERED,
            answer=answer,
            user_turn_id=user_turn.id,
            assistant_turn_id=assistant_turn.id,
        )

    def history(self, matter_id: str, limit: int = 100) -> List[ChatTurn]:
        return self.chat_history.list_turns(matter_id, limit=limit)
