"""Filename codec, PDF handling, AI analysis decoding and permissions."""
