"""
Shared Kernel - value objects, exceptions and events used across the domain.
"""
