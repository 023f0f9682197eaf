"""
Donation settlement service.

Applies Stripe payment confirmations to pending donation payments exactly once
and credits match funding across the donation and its fundraiser in a single
all-or-nothing write.
"""

__version__ = "1.0.0"
