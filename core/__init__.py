"""
Retrieval core: tiered snapshots, the tier orchestrator, and the
response envelope.
"""
