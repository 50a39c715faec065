"""
Risk Gate Test Suite
"""
