"""
ZK Insurance Verifier Test Suite
================================

Test organization:
- tests/unit/              - Unit tests (no network, fake toolchain)
- tests/services/verifier/ - Session and listener tests over real sockets

Run tests:
    pytest                          # All tests
    pytest tests/unit               # Unit tests only
"""
