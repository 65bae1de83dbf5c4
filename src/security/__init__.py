"""Security & GDPR module — event guard, audit, consent, suspension, data subject rights, incidents."""

from src.security.audit import audit_emitter
from src.security.consent import consent_manager
from src.security.data_export import data_exporter
from src.security.erasure import erasure_processor
from src.security.incidents import incident_registry
from src.security.suspension import suspension_manager

__all__ = [
    "audit_emitter",
    "consent_manager",
    "data_exporter",
    "erasure_processor",
    "incident_registry",
    "suspension_manager",
]
