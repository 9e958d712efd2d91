"""
Licenses module - License lifecycle management.

This module handles:
- License entity, its invariants and status transitions
- Renewal reminders, auto-suspension and grace periods
- Manual renew, extend, reactivate and cancel actions
- License notifications
"""
