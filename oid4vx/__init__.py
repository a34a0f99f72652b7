"""OpenID4VCI issuance and OpenID4VP presentation core."""
