"""
Triangular Arbitrage Engine.

An asynchronous engine that detects triangular arbitrage cycles on a single
exchange account, scores them against live order-book depth, and executes
them as a sequential multi-leg saga with compensating rollback.
"""

__version__ = "1.0.0"
__author__ = "Tim"
