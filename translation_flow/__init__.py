"""Translation orchestration engine for chat-completion backends."""

__version__ = "0.3.0"
