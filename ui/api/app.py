"""FastAPI layer that exposes ingest, search and streaming chat."""
from __future__ import annotations

import uuid

from fastapi import BackgroundTasks, FastAPI, Query as FastAPIQuery, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from application.use_cases.conversations import (
    create_conversation,
    delete_conversation,
    list_conversations,
    list_turns,
)
from application.use_cases.ingest_documents import SourceDocument
from domain.entities import Conversation, ConversationTurn, SyncState
from domain.errors import (
    ContextChatError,
    NotFoundError,
    ProviderError,
    SyncInProgressError,
    ValidationError,
)
from infrastructure.config import Container
from ui.api.sse import encode_events

_STATUS_BY_ERROR: tuple[tuple[type[ContextChatError], int], ...] = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (SyncInProgressError, 409),
    (ProviderError, 502),
)


class ConversationCreate(BaseModel):
    title: str = ""
    collection_ids: list[str] = Field(default_factory=list)


class ConversationPayload(BaseModel):
    id: str
    title: str
    collection_ids: list[str]
    created_at: str | None

    @classmethod
    def from_entity(cls, conversation: Conversation) -> ConversationPayload:
        return cls(
            id=conversation.id,
            title=conversation.title,
            collection_ids=list(conversation.collection_filter),
            created_at=conversation.created_at.isoformat() if conversation.created_at else None,
        )


class TurnPayload(BaseModel):
    id: str
    role: str
    content: str
    created_at: str | None

    @classmethod
    def from_entity(cls, turn: ConversationTurn) -> TurnPayload:
        return cls(
            id=turn.id,
            role=turn.role,
            content=turn.content,
            created_at=turn.created_at.isoformat() if turn.created_at else None,
        )


class MessageRequest(BaseModel):
    message: str
    collection_ids: list[str] | None = None


class DocumentPayload(BaseModel):
    document_id: str | None = None
    source_name: str
    content: str


class IngestResponse(BaseModel):
    document_id: str
    indexed: bool
    chunk_count: int
    skipped_reason: str | None = None


class SyncRequest(BaseModel):
    documents: list[DocumentPayload]


class SyncResponse(BaseModel):
    collection_id: str
    status: str
    error: str | None = None
    documents_indexed: int = 0
    documents_failed: int = 0

    @classmethod
    def from_state(cls, state: SyncState) -> SyncResponse:
        return cls(
            collection_id=state.collection_id,
            status=state.status,
            error=state.error,
            documents_indexed=state.documents_indexed,
            documents_failed=state.documents_failed,
        )


class DeleteResponse(BaseModel):
    removed_chunks: int


class SearchResponse(BaseModel):
    query: str
    results: list[dict]


def create_app(container: Container) -> FastAPI:
    app = FastAPI(title="ContextChat API")

    @app.exception_handler(ContextChatError)
    async def _handle_domain_error(_request: Request, exc: ContextChatError) -> JSONResponse:
        status = next((code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)), 500)
        return JSONResponse(status_code=status, content={"error": str(exc)})

    @app.post("/conversations", response_model=ConversationPayload, status_code=201)
    def create_conversation_endpoint(payload: ConversationCreate) -> ConversationPayload:
        conversation = create_conversation(
            repository=container.conversations,
            title=payload.title,
            collection_ids=payload.collection_ids,
        )
        return ConversationPayload.from_entity(conversation)

    @app.get("/conversations", response_model=list[ConversationPayload])
    def list_conversations_endpoint() -> list[ConversationPayload]:
        return [ConversationPayload.from_entity(item) for item in list_conversations(repository=container.conversations)]

    @app.get("/conversations/{conversation_id}/turns", response_model=list[TurnPayload])
    def list_turns_endpoint(conversation_id: str) -> list[TurnPayload]:
        turns = list_turns(conversation_id, repository=container.conversations)
        return [TurnPayload.from_entity(turn) for turn in turns]

    @app.delete("/conversations/{conversation_id}", status_code=204)
    def delete_conversation_endpoint(conversation_id: str) -> None:
        delete_conversation(conversation_id, repository=container.conversations)

    @app.post("/conversations/{conversation_id}/messages")
    async def send_message_endpoint(conversation_id: str, payload: MessageRequest) -> StreamingResponse:
        events = await container.orchestrator.send_message(
            conversation_id,
            payload.message,
            collection_ids=payload.collection_ids,
        )
        return StreamingResponse(
            encode_events(events),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.post("/collections/{collection_id}/documents", response_model=IngestResponse)
    def ingest_endpoint(collection_id: str, payload: DocumentPayload) -> IngestResponse:
        result = container.pipeline.ingest(
            payload.document_id or str(uuid.uuid4()),
            collection_id,
            payload.content,
            payload.source_name,
        )
        return IngestResponse(
            document_id=result.document_id,
            indexed=result.indexed,
            chunk_count=result.chunk_count,
            skipped_reason=result.skipped_reason,
        )

    @app.delete("/documents/{document_id}", response_model=DeleteResponse)
    def delete_document_endpoint(document_id: str) -> DeleteResponse:
        return DeleteResponse(removed_chunks=container.pipeline.remove_document(document_id))

    @app.delete("/collections/{collection_id}", response_model=DeleteResponse)
    def delete_collection_endpoint(collection_id: str) -> DeleteResponse:
        return DeleteResponse(removed_chunks=container.pipeline.remove_collection(collection_id))

    @app.post("/collections/{collection_id}/sync", response_model=SyncResponse, status_code=202)
    def sync_endpoint(collection_id: str, payload: SyncRequest, background_tasks: BackgroundTasks) -> SyncResponse:
        lease = container.pipeline.start_sync(collection_id)
        documents = [
            SourceDocument(
                document_id=doc.document_id or str(uuid.uuid4()),
                source_name=doc.source_name,
                content=doc.content,
            )
            for doc in payload.documents
        ]
        background_tasks.add_task(container.pipeline.run_sync, lease, documents)
        return SyncResponse.from_state(lease)

    @app.get("/collections/{collection_id}/sync", response_model=SyncResponse)
    def sync_status_endpoint(collection_id: str) -> SyncResponse:
        state = container.pipeline.sync_guard.status(collection_id)
        if state is None:
            raise NotFoundError(f"No sync recorded for collection {collection_id}")
        return SyncResponse.from_state(state)

    @app.get("/search", response_model=SearchResponse)
    def search_endpoint(
        q: str = FastAPIQuery(..., description="User query"),
        collection_id: list[str] | None = FastAPIQuery(None),
        limit: int = FastAPIQuery(10, ge=1, le=100),
    ) -> SearchResponse:
        results = container.retriever.search_ranked(q, collection_id or (), limit)
        serialized = [
            {"chunk_id": result.chunk_id, "score": result.score, "text": result.text}
            for result in results
        ]
        return SearchResponse(query=q, results=serialized)

    return app


__all__ = ["create_app"]
