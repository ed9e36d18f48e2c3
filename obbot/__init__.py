"""
Order block sweep bot: liquidity sweep -> break of structure -> order block retest
"""

__version__ = "0.1.0"
