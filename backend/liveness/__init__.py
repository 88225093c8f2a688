"""
Liveness check service
"""
