"""
PayLoom escrow core - escrowed marketplace transactions, disputes and wallets
"""
