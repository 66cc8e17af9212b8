"""
Tests of csdio
"""
