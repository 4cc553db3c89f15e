"""Pydantic schemas for request and response documentation."""
