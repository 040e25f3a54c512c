"""Meeting Tasks -- transcript-to-task extraction service.

Ingests meeting transcripts (submitted directly or downloaded from recorded
Zoom meetings), extracts action items with a language model, and persists
them as tasks owned by the requesting user.
"""
