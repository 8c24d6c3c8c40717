"""
Conversation turn handling and prompt assembly
"""

from .assembler import ContextAssembler, MEMORY_HEADER, TRANSCRIPT_HEADER
from .manager import ConversationManager, Session

__all__ = ["ContextAssembler", "MEMORY_HEADER", "TRANSCRIPT_HEADER", "ConversationManager", "Session"]
