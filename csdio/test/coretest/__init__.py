"""
Tests of csdio.core and csdio.units
"""
