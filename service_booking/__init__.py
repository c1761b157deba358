"""
Medicare booking service package.
"""
