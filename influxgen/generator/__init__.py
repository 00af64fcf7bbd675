"""influxgen measurement code generator."""

from .parser import *
from .resolver import ConstraintViolation as ConstraintViolation
from .resolver import InvalidAnnotation as InvalidAnnotation
from .resolver import ResolutionError as ResolutionError
from .resolver import UnsupportedShape as UnsupportedShape
from .resolver import resolve as resolve
from .resolver import resolve_all as resolve_all
from .types import *
