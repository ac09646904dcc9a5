"""Persistence for browsing-history candidates."""

from researchvault.storage.candidates import CandidateStore, SqliteCandidateStore, StoreError

__all__ = ["CandidateStore", "SqliteCandidateStore", "StoreError"]
