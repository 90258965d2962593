"""
Security models - Roles enum
"""

import enum


class Role(str, enum.Enum):
    """Roles an actor can hold against an escrow transaction"""
    BUYER = "BUYER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"  # gateway callbacks and periodic sweeps
