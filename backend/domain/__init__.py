"""
Domain logic
"""
