"""Pydantic schemas shared by services and HTTP endpoints."""
