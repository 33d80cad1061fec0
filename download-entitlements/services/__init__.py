"""Purchase ingestion, download authorization and entitlement lookup."""
