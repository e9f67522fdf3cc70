"""
Bug tracker backend package.

Provides a FastAPI application for user accounts, bug reports with a
status/assignment workflow, threaded comments and push notifications.
"""
