"""
Escrow domain - Pure rules (no database, no network)
"""
