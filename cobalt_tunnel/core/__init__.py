"""
Core domain types, interfaces and services of the tunnel.
"""
