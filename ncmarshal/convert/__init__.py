# convert/__init__.py

from .dispatch import Converter, ReadConversion

__all__ = ["Converter", "ReadConversion"]
