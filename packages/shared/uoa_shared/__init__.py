"""Pydantic schemas shared by the UOA auth server and its client SDKs."""

__version__ = "0.1.0"
