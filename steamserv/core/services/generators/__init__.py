"""
Generators — produce host files from server records.

Generators are pure: same record in, same text out.
"""
