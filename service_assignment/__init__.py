"""
Claim assignment dispatcher service.
"""
