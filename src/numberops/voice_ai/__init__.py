"""
Voice-AI provider package.

Do not import factory/adapters here.
"""

__all__ = [
    "interface",
    "config",
    "factory",
    "elevenlabs_adapter",
    "mock_adapter",
]
