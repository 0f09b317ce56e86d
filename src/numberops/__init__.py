"""
numberops: phone-number lifecycle service for voice-agent accounts.
"""

__version__ = "0.1.0"
