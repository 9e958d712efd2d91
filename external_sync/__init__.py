"""
External sync module - reconciliation with the external license API.

This module handles:
- Transforming external records into synced licenses
- Paginated fetch with retry and circuit breaking
- Upserting pages into the license store
- Sync run summaries
"""
