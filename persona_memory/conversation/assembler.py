"""
Prompt assembly under a total token budget
"""

from typing import List, Optional, Sequence

from ..config import get_config
from ..core.models import AssembledContext, ConversationEntry, MemoryRecord
from ..llm.base import TokenCounter
from ..logging import get_logger

MEMORY_HEADER = "Relevant memories:"
TRANSCRIPT_HEADER = "Recent conversation:"


class ContextAssembler:
    """Builds the model prompt from persona text, retrieved memories and the transcript tail.

    The persona always comes first. Memories follow in the order given, each
    included only if it fits what is left. The transcript tail is filled
    newest-first with whatever remains and presented in chronological order.
    A section header is only emitted, and only charged, when its section has
    at least one line.
    """

    def __init__(self, token_counter: TokenCounter):
        self.token_counter = token_counter
        self.logger = get_logger(__name__)

    def assemble(
        self,
        retrieved_records: Sequence[MemoryRecord],
        conversation_tail: Sequence[ConversationEntry],
        persona_text: str,
        total_budget: Optional[int] = None
    ) -> AssembledContext:
        if total_budget is None:
            total_budget = get_config().context.total_budget
        if total_budget < 0:
            raise ValueError("total_budget must be non-negative")

        count = self.token_counter.count_units

        persona_units = count(persona_text)
        if persona_units > total_budget:
            message = f"persona text needs {persona_units} units, total budget is {total_budget}"
            self.logger.warning(f"Cannot assemble context: {message}")
            return AssembledContext(budget=total_budget, error=message)

        remaining = total_budget - persona_units

        memory_lines: List[str] = []
        memory_ids: List[int] = []
        header_units = count(MEMORY_HEADER)
        for record in retrieved_records:
            line = f"- {record.text}"
            cost = count(line) + (0 if memory_lines else header_units)
            if cost > remaining:
                continue
            memory_lines.append(line)
            memory_ids.append(record.id)
            remaining -= cost

        tail_lines: List[str] = []
        header_units = count(TRANSCRIPT_HEADER)
        for entry in reversed(conversation_tail):
            line = f"{entry.speaker}: {entry.text}"
            cost = count(line) + (0 if tail_lines else header_units)
            if cost > remaining:
                break
            tail_lines.append(line)
            remaining -= cost
        tail_lines.reverse()

        sections = [persona_text]
        if memory_lines:
            sections.append("\n".join([MEMORY_HEADER] + memory_lines))
        if tail_lines:
            sections.append("\n".join([TRANSCRIPT_HEADER] + tail_lines))

        units_used = total_budget - remaining
        self.logger.debug(
            f"Assembled context: {len(memory_ids)} memories, {len(tail_lines)} transcript lines, "
            f"{units_used}/{total_budget} units"
        )
        return AssembledContext(
            prompt="\n\n".join(sections),
            included_memory_ids=memory_ids,
            included_tail_count=len(tail_lines),
            units_used=units_used,
            budget=total_budget
        )
