"""
Base service class
"""

from abc import ABC


class BaseService(ABC):
    """
    Base class for all services.

    Services orchestrate domain components; they are built once at startup
    and shared by all requests.
    """
    pass
