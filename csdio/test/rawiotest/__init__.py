"""
Tests of the csdio.rawio readers
"""
