"""
Claim Assignment Service application package.
"""
