"""Services Layer: transaction coordination, RLS scoping, auditing, orchestration.

Invariants:
    - Every DB round-trip happens here (core/ stays pure)
    - Errors propagate unchanged to the caller; nothing is retried
"""
