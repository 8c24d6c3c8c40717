"""
Configuration management package for Persona Memory

Provides centralized configuration management with:
- Environment variable loading from .env files
- Runtime configuration validation
- Type-safe configuration classes
- Global configuration access patterns

Usage:
    from persona_memory.config import get_config

    config = get_config()
    print(f"Recency decay per hour: {config.scoring.decay_factor}")
    print(f"Using model: {config.ollama.default_model}")
"""

from .manager import (
    ConfigManager,
    ScoringConfig,
    ReflectionConfig,
    ContextConfig,
    SessionConfig,
    OllamaConfig,
    DatabaseConfig,
    LoggingConfig,
    DEFAULT_REFLECTION_QUERY,
    get_config,
    init_config
)

__all__ = [
    "ConfigManager",
    "ScoringConfig",
    "ReflectionConfig",
    "ContextConfig",
    "SessionConfig",
    "OllamaConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "DEFAULT_REFLECTION_QUERY",
    "get_config",
    "init_config"
]
