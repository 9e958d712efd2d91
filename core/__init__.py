"""
Core module for shared domain infrastructure.

This module contains:
- Domain exceptions, value objects and events
- Batch folding and cancellation
- Event bus, transactions, retry and circuit breaking
- Prometheus metrics and health views
"""
