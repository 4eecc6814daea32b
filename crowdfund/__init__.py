"""
Crowdfund Ledger

Campaign state machine and pledge ledger: creators launch campaigns with a
goal and a time window, backers pledge a fungible token, creators claim
successful campaigns and backers are refunded from failed ones.
"""

__version__ = "1.0.0"
