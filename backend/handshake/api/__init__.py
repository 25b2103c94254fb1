"""HTTP API for the Handshake ledger."""
