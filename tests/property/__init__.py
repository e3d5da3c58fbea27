"""
Property-based tests for CertSeal integrity primitives.

Hypothesis-driven checks that canonical JSON, hashes, certificate IDs and
embedded metadata keep their invariants across random inputs.
"""
