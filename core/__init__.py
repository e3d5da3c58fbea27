"""
CertSeal Core Module

This module contains the certificate integrity pipeline:
- Canonical JSON and SHA-512 hashing
- Certificate IDs and HMAC signatures
- Deterministic security patterns and PDF rendering
- Metadata embedding and verification

The core module is framework-agnostic: persistence, templates and settings
are injected by the caller.

Example usage:
    from core.issue import CertificateIssuer
    from core.verify import CertificateVerifier
    from core.store import InMemoryCertificateStore
"""

__version__ = "0.1.0"
