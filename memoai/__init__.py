"""
MemoAI: spaced-repetition review engine for personal notes.

Notes are split into knowledge chunks, each scheduled with SM-2 and
ranked by a priority score. High-priority due chunks become pushes:
bounded review sessions run by an AI tutor or graded by hand.
"""

__version__ = "0.3.0"
