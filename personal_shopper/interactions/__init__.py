"""
Interaction feedback layer.

Responsibilities:
- Accept interaction events idempotently and append them to the log.
- Serialise ingestion per user without a global lock.
- Summarise a user's activity and overall product popularity.
"""
