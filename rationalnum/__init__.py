from .rationalnum import *
from .rationalnum import __all__, round

__version__ = '1.0.0'
