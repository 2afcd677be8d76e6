"""
Order service package initialization.

This module makes the order service directory a Python package: status
enums, line item rules, the transition gate, the edit session, the board
partitioner, the persistence gateway, and the lifecycle coordinator.
"""
