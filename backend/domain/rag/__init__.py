"""
Retrieval-augmented generation domain
"""
