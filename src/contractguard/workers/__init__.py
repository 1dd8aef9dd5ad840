"""
Job queue and background workers.
"""
