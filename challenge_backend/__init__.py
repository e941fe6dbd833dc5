"""
Backend package for the coding-challenge submission platform.

This package provides a FastAPI application for accounts, pre-signed file
uploads, bounded per-question submissions and the leaderboard, with
storage, database, session and email abstractions that fall back to
in-memory implementations when no backing service is configured.
"""
