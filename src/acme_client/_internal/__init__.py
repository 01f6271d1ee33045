"""acme_client internals."""
