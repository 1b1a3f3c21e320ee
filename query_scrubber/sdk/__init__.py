"""
SDK for Query Scrubber.

Provides the metered chat-completions client used by the job.
"""

from .openai_client import MeteredOpenAI, completion_text

__all__ = ["MeteredOpenAI", "completion_text"]
