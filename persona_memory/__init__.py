"""
persona-memory: scored long-term memory for conversational agents

Every turn becomes a memory record; prompts are assembled from the records
most worth recalling under a fixed context budget, and reflection compresses
observations into higher-level memories that feed back into the same stream.
"""

__version__ = "0.1.0"
