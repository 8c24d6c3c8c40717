"""
Turn orchestration for persona conversations

A turn records the incoming message, reflects if enough has happened,
retrieves memories for the message, assembles the prompt, invokes the model
and records its response. Turns for one identity are serialized on that
identity's stream lock; distinct identities share nothing mutable and can run
their turns in parallel.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..config import get_config
from ..core.exceptions import BudgetExceeded, ExternalCallFailure, MemoryEngineError
from ..core.models import (
    ConversationBuffer, MemoryKind, MemoryRecord, TurnResult, TurnState, ensure_utc, utc_now
)
from ..llm.base import EmbeddingProvider, LLMProvider, TokenCounter, guarded_call
from ..logging import correlation_context, get_logger
from ..memory import MemoryRetriever, MemoryScorer, MemoryStream, ReflectionEngine, elicit_memory_fields
from .assembler import ContextAssembler


@dataclass
class Session:
    """Everything kept per identity between turns"""
    owner_id: str
    stream: MemoryStream
    buffer: ConversationBuffer
    reflection: ReflectionEngine
    state: TurnState = TurnState.IDLE
    turn_count: int = 0
    created_at: datetime = field(default_factory=utc_now)


class ConversationManager:
    """Runs conversation turns against per-identity memory streams"""

    def __init__(
        self,
        llm: LLMProvider,
        embedder: EmbeddingProvider,
        token_counter: TokenCounter,
        scorer: Optional[MemoryScorer] = None,
        memory_budget: Optional[int] = None,
        total_budget: Optional[int] = None,
        response_max_tokens: Optional[int] = None,
        agent_name: Optional[str] = None
    ):
        self.config = get_config()
        self.llm = llm
        self.embedder = embedder
        self.token_counter = token_counter

        self.retriever = MemoryRetriever(embedder, token_counter, scorer)
        self.assembler = ContextAssembler(token_counter)

        context = self.config.context
        self.memory_budget = memory_budget if memory_budget is not None else context.memory_budget
        self.total_budget = total_budget if total_budget is not None else context.total_budget
        self.response_max_tokens = (
            response_max_tokens if response_max_tokens is not None else context.response_max_tokens
        )
        self.agent_name = agent_name or self.config.session.agent_name

        self._sessions: Dict[str, Session] = {}
        self.logger = get_logger(__name__)

    # Session registry

    def _new_reflection_engine(self) -> ReflectionEngine:
        return ReflectionEngine(self.llm, self.embedder, self.retriever)

    def session(self, owner_id: str) -> Session:
        """Get the session for an identity, creating an empty one on first use"""
        if owner_id not in self._sessions:
            self._sessions[owner_id] = Session(
                owner_id=owner_id,
                stream=MemoryStream(owner_id),
                buffer=ConversationBuffer(self.config.session.max_buffer_entries),
                reflection=self._new_reflection_engine()
            )
            self.logger.info(f"Started session for '{owner_id}'")
        return self._sessions[owner_id]

    def register(self, stream: MemoryStream, buffer: Optional[ConversationBuffer] = None) -> Session:
        """Adopt an existing stream (e.g. one loaded from storage) as an identity's session"""
        session = Session(
            owner_id=stream.owner_id,
            stream=stream,
            buffer=buffer or ConversationBuffer(self.config.session.max_buffer_entries),
            reflection=self._new_reflection_engine()
        )
        self._sessions[stream.owner_id] = session
        self.logger.info(f"Registered session for '{stream.owner_id}' ({len(stream)} memories)")
        return session

    def drop_session(self, owner_id: str) -> Optional[Session]:
        return self._sessions.pop(owner_id, None)

    @property
    def owner_ids(self) -> List[str]:
        return list(self._sessions)

    def state(self, owner_id: str) -> TurnState:
        session = self._sessions.get(owner_id)
        return session.state if session else TurnState.IDLE

    def _session_for(self, stream: MemoryStream, buffer: ConversationBuffer) -> Session:
        session = self._sessions.get(stream.owner_id)
        if session is None:
            session = Session(
                owner_id=stream.owner_id,
                stream=stream,
                buffer=buffer,
                reflection=self._new_reflection_engine()
            )
            self._sessions[stream.owner_id] = session
        return session

    # Turns

    async def run_turn(
        self,
        owner_id: str,
        speaker: str,
        text: str,
        persona_text: str,
        now: Optional[datetime] = None
    ) -> TurnResult:
        """Run a turn against the registered session for an identity"""
        session = self.session(owner_id)
        return await self.handle_turn(session.stream, session.buffer, speaker, text, persona_text, now)

    async def handle_turn(
        self,
        stream: MemoryStream,
        buffer: ConversationBuffer,
        speaker: str,
        text: str,
        persona_text: str,
        now: Optional[datetime] = None
    ) -> TurnResult:
        """Process one incoming message and return the agent's response.

        Raises ExternalCallFailure when a model call fails and BudgetExceeded
        when the persona text alone does not fit the total budget. A failed
        turn is rolled back: records inserted during it (reflections included),
        access-time touches, buffer lines and accumulated reflection importance
        are all restored, so the caller can retry the whole turn.
        """
        session = self._session_for(stream, buffer)

        async with stream.lock:
            with correlation_context() as correlation_id:
                start_time = time.time()
                turn_time = ensure_utc(now) if now is not None else utc_now()
                checkpoint = stream.checkpoint()
                buffer_entries = buffer.tail()
                pending_importance = session.reflection.pending_importance

                try:
                    session.state = TurnState.RECORD_INCOMING
                    incoming = await self._record_observation(stream, text, speaker, turn_time)
                    session.reflection.record_observation(incoming)
                    buffer.append(speaker, text, turn_time)

                    session.state = TurnState.MAYBE_REFLECT
                    reflections = await session.reflection.maybe_reflect(stream, turn_time)

                    session.state = TurnState.RETRIEVE
                    retrieved = await self.retriever.retrieve(stream, text, self.memory_budget, now=turn_time)

                    session.state = TurnState.ASSEMBLE
                    context = self.assembler.assemble(retrieved, buffer.tail(), persona_text, self.total_budget)
                    if not context.ok:
                        raise BudgetExceeded(context.error, budget=self.total_budget)

                    session.state = TurnState.INVOKE
                    response = await guarded_call(
                        "complete", self.llm.complete(context.prompt, self.response_max_tokens)
                    )
                    response = response.strip()
                    if not response:
                        raise ExternalCallFailure("complete", "model returned an empty response")

                    session.state = TurnState.RECORD_RESPONSE
                    response_time = turn_time if now is not None else max(utc_now(), turn_time)
                    response_record = await self._record_observation(
                        stream, response, self.agent_name, response_time
                    )
                    session.reflection.record_observation(response_record)
                    buffer.append(self.agent_name, response, response_time)

                except Exception as e:
                    if isinstance(e, MemoryEngineError):
                        self.logger.error(
                            f"Turn for '{stream.owner_id}' failed during {session.state.value}: {e}"
                        )
                    else:
                        self.logger.exception(
                            f"Unexpected error in turn for '{stream.owner_id}' during {session.state.value}"
                        )
                    stream.rollback(checkpoint)
                    buffer.clear()
                    buffer.extend(buffer_entries)
                    session.reflection.restore(pending_importance)
                    raise
                finally:
                    session.state = TurnState.IDLE

                session.turn_count += 1
                processing_time = time.time() - start_time
                self.logger.info(
                    f"Turn {session.turn_count} for '{stream.owner_id}' completed in {processing_time:.2f}s "
                    f"({len(retrieved)} memories, {len(reflections)} reflections)"
                )

                return TurnResult(
                    response=response,
                    incoming_id=incoming.id,
                    response_id=response_record.id,
                    retrieved_ids=[record.id for record in retrieved],
                    reflection_ids=[record.id for record in reflections],
                    prompt=context.prompt,
                    correlation_id=correlation_id,
                    processing_time=processing_time
                )

    async def _record_observation(
        self,
        stream: MemoryStream,
        text: str,
        speaker: str,
        created_at: datetime
    ) -> MemoryRecord:
        importance, embedding = await elicit_memory_fields(self.llm, self.embedder, text)
        record = MemoryRecord(
            text=text,
            embedding=embedding,
            kind=MemoryKind.OBSERVATION,
            importance=importance,
            created_at=created_at,
            speaker=speaker
        )
        return stream.get(stream.insert(record))
