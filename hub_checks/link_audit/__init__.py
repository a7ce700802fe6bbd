"""
Link Audit Module

Verifies the hub documents: external links, local files, images and
in-page anchors. Each document is audited independently and in parallel.
"""

from .document_audit import DocumentAudit
from .orchestrate import audit_hub

__all__ = ['DocumentAudit', 'audit_hub']
