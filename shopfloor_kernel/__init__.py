"""
Shop-Floor Kernel

Server-side core of the manufacturing-floor worker-session tracker:
- Session lifecycle and status-event state machine
- WIP pull-ledger serialized per job item
- Report state machines and the first-product approval gate
- End-of-production quantity reporting
"""

__version__ = "0.1.0"
