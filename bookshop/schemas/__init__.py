"""Pydantic models for ledger entities, request payloads and report rows."""
