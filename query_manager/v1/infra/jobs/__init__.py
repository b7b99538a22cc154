"""
Background job infrastructure.

This package provides a database-backed job queue with:
- Atomic claims safe across worker processes
- Registry-based pluggable handlers
- Exponential backoff retries and a retention sweeper
- A controller that starts, stops and drains the worker
"""
