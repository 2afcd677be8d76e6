"""
Schemas package initialization.

Pydantic models describing documents exchanged with the order backend.
"""
