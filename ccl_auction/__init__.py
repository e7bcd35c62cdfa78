"""
Crash-resilient live team auction.
"""
