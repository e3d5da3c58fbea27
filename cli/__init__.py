"""
CertSeal CLI Module

This module contains the command-line interface for CertSeal using Typer.

Available commands:
- generate: Issue a certificate and write the PDF
- verify: Verify a certificate PDF against the database
- verify-id: Verify a certificate by its printed ID
- inspect: Offline check of the embedded metadata
- revoke: Change a certificate's status
- templates: List available templates
- init-db: Create the database tables
- health: Check database connectivity

Example usage:
    certseal generate "Jane Doe" "Data Structures 101" --template healthcare
    certseal verify CERT-....pdf
"""

__version__ = "0.1.0"
