"""
Backend package for the finance dashboard.

This package provides a FastAPI application with database, billing and
auth client abstractions so the dashboard widgets, the subscription
webhook and the sign-in callback share one service.
"""
