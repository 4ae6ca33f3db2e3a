"""5G RAN building blocks: MILENAGE and key derivation, NIA2 integrity, common IEs and an SCTP transaction stack."""

__version__ = "0.1.0"