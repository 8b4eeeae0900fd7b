"""Static prompt-security scanner for LLM-facing text in source trees."""

__version__ = "1.3.0"
