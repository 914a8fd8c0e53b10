# =============================================================================
# pwa_core/__init__.py
# Offline Form Submission Resilience Core
# =============================================================================
"""
pwa_core - request routing, versioned caching and offline sync reconciliation
for the service-order form application.
"""

__version__ = "0.51.0"
