"""Utilities package for the point tracker."""
from .display import FrameSink
from .logger import Logger

__all__ = ['FrameSink', 'Logger']
