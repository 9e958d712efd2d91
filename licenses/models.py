"""
Model registration for the licenses app.

The models live in the infrastructure layer; Django discovers them here.
"""
from licenses.infrastructure.models import License, RenewalHistoryEntry  # noqa: F401
