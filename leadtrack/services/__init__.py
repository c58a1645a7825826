# leadtrack/services/__init__.py
"""
Tracking pipeline services: hashing, enrichment, event assembly,
platform fan-out and CRM lifecycle events.
"""

from leadtrack.services.enrichment import EnrichmentService
from leadtrack.services.events import assemble_event, generate_event_id
from leadtrack.services.hashing import HashingService, RawIdentity
from leadtrack.services.lifecycle import LifecycleService, build_lifecycle_service
from leadtrack.services.signals import AmbientSignals, build_signals
from leadtrack.services.tracking import TrackingOutcome, TrackingService, build_tracking_service

__all__ = [
    # Hashing
    "HashingService",
    "RawIdentity",
    # Enrichment
    "AmbientSignals",
    "EnrichmentService",
    "build_signals",
    # Events
    "assemble_event",
    "generate_event_id",
    # Fan-out
    "TrackingOutcome",
    "TrackingService",
    "build_tracking_service",
    # CRM lifecycle
    "LifecycleService",
    "build_lifecycle_service",
]
