"""
AI Study Mentor.

A single-page study assistant: mode-specific prompts sent to a hosted Gemini endpoint,
with per-user MBTI profiles and a realtime study history kept in Firestore.
"""

from .config.loader import load_settings

__all__ = ["load_settings"]
