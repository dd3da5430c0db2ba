"""
Persistence package: wire format for transition groups.
"""
