"""Pipedrive backend-for-frontend.

Proxies the Pipedrive CRM API for the sales frontend: one POST endpoint,
one action per call, normalized JSON envelopes back.
"""

__version__ = "0.1.0"
