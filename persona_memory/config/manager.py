"""
Configuration Manager for Persona Memory
========================================

Centralized configuration management with environment variable loading,
validation, and type safety for the scoring, reflection, context and adapter
settings used throughout the engine.
"""

import os
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


DEFAULT_REFLECTION_QUERY = "What are the high-level insights from recent experience?"


@dataclass
class ScoringConfig:
    """Memory scoring configuration"""
    decay_factor: float = 0.99      # recency multiplier per hour since last access

    # Relative weights, normalized before use
    recency_weight: float = 1.0
    importance_weight: float = 1.0
    relevance_weight: float = 1.0

    # Bounds for model-elicited importance
    importance_min: int = 1
    importance_max: int = 10


@dataclass
class ReflectionConfig:
    """Reflection trigger and synthesis configuration"""
    importance_threshold: int = 30
    top_k: int = 10
    max_insights: int = 3
    retrieval_budget: int = 1000
    query: str = DEFAULT_REFLECTION_QUERY


@dataclass
class ContextConfig:
    """Prompt assembly budgets (token-equivalent units)"""
    memory_budget: int = 1000
    total_budget: int = 3000
    response_max_tokens: int = 256


@dataclass
class SessionConfig:
    """Conversation session configuration"""
    max_buffer_entries: int = 20
    agent_name: str = "assistant"


@dataclass
class OllamaConfig:
    """Ollama LLM provider configuration"""
    host: str = "http://localhost:11434"
    default_model: str = "llama3.1:8b"
    embedding_model: str = "nomic-embed-text"
    timeout_seconds: int = 60
    temperature: float = 0.7
    top_p: float = 0.9


@dataclass
class DatabaseConfig:
    """Database and storage configuration"""
    sqlite_path: str = "data/persona_memory.db"
    chromadb_path: str = "data/chromadb"
    enable_wal_mode: bool = True


@dataclass
class LoggingConfig:
    """Logging output configuration"""
    log_level: str = "INFO"
    debug_mode: bool = False
    log_file: Optional[str] = None


class ConfigManager:
    """
    Centralized configuration manager with environment variable loading
    and runtime validation for all engine settings.
    """

    def __init__(self, env_file_path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file for loading environment variables
        """
        self._load_env_file(env_file_path)

        self.scoring = self._load_scoring_config()
        self.reflection = self._load_reflection_config()
        self.context = self._load_context_config()
        self.session = self._load_session_config()
        self.ollama = self._load_ollama_config()
        self.database = self._load_database_config()
        self.logging = self._load_logging_config()

        self._validate_configuration()

        logger.info("Configuration loaded and validated successfully")

    def _load_env_file(self, env_file_path: Optional[str]) -> None:
        """Load environment variables from .env file if it exists"""
        env_path = Path(env_file_path) if env_file_path else Path(".env")

        if env_path.exists():
            load_dotenv(env_path, override=True)
            logger.info(f"Loaded environment variables from {env_path}")

    def _get_env_bool(self, key: str, default: bool) -> bool:
        """Get boolean environment variable with proper conversion"""
        value = os.getenv(key, str(default)).lower()
        return value in ('true', '1', 'yes', 'on')

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer environment variable with validation"""
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            logger.warning(f"Invalid integer value for {key}, using default: {default}")
            return default

    def _get_env_float(self, key: str, default: float) -> float:
        """Get float environment variable with validation"""
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            logger.warning(f"Invalid float value for {key}, using default: {default}")
            return default

    def _load_scoring_config(self) -> ScoringConfig:
        return ScoringConfig(
            decay_factor=self._get_env_float("MEMORY_DECAY_FACTOR", 0.99),
            recency_weight=self._get_env_float("MEMORY_RECENCY_WEIGHT", 1.0),
            importance_weight=self._get_env_float("MEMORY_IMPORTANCE_WEIGHT", 1.0),
            relevance_weight=self._get_env_float("MEMORY_RELEVANCE_WEIGHT", 1.0),
            importance_min=self._get_env_int("MEMORY_IMPORTANCE_MIN", 1),
            importance_max=self._get_env_int("MEMORY_IMPORTANCE_MAX", 10)
        )

    def _load_reflection_config(self) -> ReflectionConfig:
        return ReflectionConfig(
            importance_threshold=self._get_env_int("REFLECTION_IMPORTANCE_THRESHOLD", 30),
            top_k=self._get_env_int("REFLECTION_TOP_K", 10),
            max_insights=self._get_env_int("REFLECTION_MAX_INSIGHTS", 3),
            retrieval_budget=self._get_env_int("REFLECTION_RETRIEVAL_BUDGET", 1000),
            query=os.getenv("REFLECTION_QUERY", DEFAULT_REFLECTION_QUERY)
        )

    def _load_context_config(self) -> ContextConfig:
        return ContextConfig(
            memory_budget=self._get_env_int("CONTEXT_MEMORY_BUDGET", 1000),
            total_budget=self._get_env_int("CONTEXT_TOTAL_BUDGET", 3000),
            response_max_tokens=self._get_env_int("RESPONSE_MAX_TOKENS", 256)
        )

    def _load_session_config(self) -> SessionConfig:
        return SessionConfig(
            max_buffer_entries=self._get_env_int("SESSION_MAX_BUFFER_ENTRIES", 20),
            agent_name=os.getenv("SESSION_AGENT_NAME", "assistant")
        )

    def _load_ollama_config(self) -> OllamaConfig:
        return OllamaConfig(
            host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
            default_model=os.getenv("DEFAULT_MODEL", "llama3.1:8b"),
            embedding_model=os.getenv("EMBEDDING_MODEL", "nomic-embed-text"),
            timeout_seconds=self._get_env_int("LLM_TIMEOUT_SECONDS", 60),
            temperature=self._get_env_float("LLM_TEMPERATURE", 0.7),
            top_p=self._get_env_float("LLM_TOP_P", 0.9)
        )

    def _load_database_config(self) -> DatabaseConfig:
        return DatabaseConfig(
            sqlite_path=os.getenv("DATABASE_PATH", "data/persona_memory.db"),
            chromadb_path=os.getenv("CHROMADB_PATH", "data/chromadb"),
            enable_wal_mode=self._get_env_bool("DATABASE_ENABLE_WAL_MODE", True)
        )

    def _load_logging_config(self) -> LoggingConfig:
        return LoggingConfig(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            debug_mode=self._get_env_bool("DEBUG_MODE", False),
            log_file=os.getenv("LOG_FILE") or None
        )

    def _validate_configuration(self) -> None:
        """Validate configuration values for consistency and ranges"""
        errors = []

        if not (0.0 < self.scoring.decay_factor < 1.0):
            errors.append("Memory decay_factor must be between 0.0 and 1.0 (exclusive)")

        weights = (
            self.scoring.recency_weight,
            self.scoring.importance_weight,
            self.scoring.relevance_weight
        )
        if any(w < 0 for w in weights):
            errors.append("Memory scoring weights must be non-negative")
        elif sum(weights) <= 0:
            errors.append("At least one memory scoring weight must be positive")

        if not (1 <= self.scoring.importance_min < self.scoring.importance_max <= 10):
            errors.append("Memory importance range must satisfy 1 <= importance_min < importance_max <= 10")

        if self.reflection.importance_threshold <= 0:
            errors.append("Reflection importance_threshold must be positive")

        if self.reflection.top_k <= 0 or self.reflection.max_insights <= 0:
            errors.append("Reflection top_k and max_insights must be positive")

        if self.context.memory_budget < 0 or self.context.total_budget <= 0:
            errors.append("Context budgets must be positive")

        if self.session.max_buffer_entries <= 0:
            errors.append("Session max_buffer_entries must be positive")

        if not (0.0 <= self.ollama.temperature <= 2.0):
            errors.append("LLM temperature must be between 0.0 and 2.0")

        if not (0.0 <= self.ollama.top_p <= 1.0):
            errors.append("LLM top_p must be between 0.0 and 1.0")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            logger.error(error_msg)
            raise ValueError(error_msg)

    def get_summary(self) -> Dict[str, Any]:
        """Get configuration summary for logging and debugging"""
        return {
            "scoring": {
                "decay_factor": self.scoring.decay_factor,
                "weights": [
                    self.scoring.recency_weight,
                    self.scoring.importance_weight,
                    self.scoring.relevance_weight
                ],
                "importance_range": f"{self.scoring.importance_min}-{self.scoring.importance_max}"
            },
            "reflection": {
                "threshold": self.reflection.importance_threshold,
                "top_k": self.reflection.top_k
            },
            "context": {
                "memory_budget": self.context.memory_budget,
                "total_budget": self.context.total_budget
            },
            "ollama": {
                "host": self.ollama.host,
                "default_model": self.ollama.default_model,
                "embedding_model": self.ollama.embedding_model
            }
        }


# Global configuration instance (initialized on first use)
_config_instance: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """
    Get the global configuration instance.

    Returns:
        ConfigManager: The global configuration instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = ConfigManager()
    return _config_instance


def init_config(env_file_path: Optional[str] = None) -> ConfigManager:
    """
    Initialize the global configuration instance with custom env file.

    Args:
        env_file_path: Optional path to .env file

    Returns:
        ConfigManager: The initialized configuration instance
    """
    global _config_instance
    _config_instance = ConfigManager(env_file_path)
    return _config_instance
