"""
ZK Insurance Verifier Services
==============================

Services:
- verifier: TCP front-end that proves insurance discount eligibility
"""

__all__ = [
    "verifier",
]
