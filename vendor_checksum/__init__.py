"""Checksum reconciliation for vendored package trees."""
