"""
Services - DB-bound escrow, dispute, wallet and sweep operations
"""
