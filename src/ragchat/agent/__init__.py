"""Conversation orchestration: completion session and REPL."""
