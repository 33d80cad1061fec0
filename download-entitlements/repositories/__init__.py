"""Entitlement Store interface and backends."""
