"""
Core package for shared utilities.

Configuration, structured logging, and the session token store shared by the
order services.
"""
