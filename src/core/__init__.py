"""Core domain package for fiberscope.

Core contains traversal, record extraction, rate limiting, motion and drift
logic without any browser or storage-specific code, keeping it portable and
testable with synthetic trees and fake clocks.
"""
