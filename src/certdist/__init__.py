"""
certdist: encrypted TLS certificate distribution.

A server hands out the certificate bundle for a domain to clients whose age
public key is on its allow-list. Bundles travel as age-encrypted ZIP archives,
so the network in between does not need to be trusted.

Built on a small Railway-Oriented Programming core (certdist.result) for
explicit, composable error handling.
"""

__version__ = "0.1.0"
