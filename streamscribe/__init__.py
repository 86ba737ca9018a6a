"""
StreamScribe - Streaming dictation pipeline with pluggable backends.

This package provides:
- Frame aggregation driven by per-frame speech probabilities
- Interchangeable transcription providers (offline, cloud, OpenAI-compatible)
- One-shot credential refresh and retry for the cloud backend
- Best-effort LLM formatting with fallback to the raw transcript
- Session orchestration with stale-response fencing

Configuration: ~/.streamscribe/settings.json and environment variables
"""

__version__ = "1.0.0"
