"""
keywarden core package
======================
Key lifecycle tracking and rotation policy for OpenPGP keys.

Provides:
- Durable store of managed keys, last action times and join-team requests
- Rotation policy classifier
- Maintenance loop driving GnuPG
"""

__version__ = "0.1.0"
