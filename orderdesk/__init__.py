"""
Back-office order desk.

Order review, line item editing, and delivery lifecycle tracking on top of
the order REST backend.
"""

__version__ = "1.0.0"
