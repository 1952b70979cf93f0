"""
Alpha Revenue
Daily revenue and points analysis for wallets trading promotional tokens
"""

__version__ = "0.3.0"
