"""
Hub Checks Package

Integrity tooling for the fraud analytics pipeline documentation hub:
- link_audit: verifies that every hyperlink, image and in-page anchor
  referenced by the hub documents resolves
"""

__version__ = "1.0.0"
