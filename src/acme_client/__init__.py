"""ACME client protocol engine.

Account registration, domain authorization through challenge-response
and certificate issuance/revocation over the signed-JSON dialect of the
early ACME drafts (``new-reg``, ``new-authz``, ``new-cert``...).

"""

__version__ = '0.4.0'
