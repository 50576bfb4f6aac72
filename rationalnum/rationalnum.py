#
# Exact rational numbers with bit-faithful conversion from IEEE-754 doubles
#

import logging
import re
import sys
from collections import namedtuple
from math import isfinite
from struct import Struct
from typing import Protocol, runtime_checkable

import attr

# round() is left out so that a star import does not shadow the builtin; it is available
# as rationalnum.round and RationalNumber.round.
__all__ = ('RationalError', 'InvalidArgument', 'MalformedString', 'DivisionByZero',
           'RationalLike', 'RationalTuple', 'RationalNumber',
           'FloatInput', 'IntegerInput', 'StringInput', 'PairInput', 'classify',
           'gcd', 'decompose', 'decimal_to_ratio',
           'add', 'sub', 'mul', 'div', 'mod', 'trunc', 'floor', 'ceil',
           'ROUND_CEILING', 'ROUND_FLOOR', 'ROUND_DOWN', 'ROUND_UP',
           'ROUND_HALF_EVEN', 'ROUND_HALF_UP', 'ROUND_HALF_DOWN')


module_logger = logging.getLogger(__name__)


# Rounding modes
ROUND_CEILING   = 'ROUND_CEILING'       # Towards +infinity
ROUND_FLOOR     = 'ROUND_FLOOR'         # Towards -infinity
ROUND_DOWN      = 'ROUND_DOWN'          # Towards zero
ROUND_UP        = 'ROUND_UP'            # Away from zero
ROUND_HALF_EVEN = 'ROUND_HALF_EVEN'     # To nearest with ties towards even
ROUND_HALF_DOWN = 'ROUND_HALF_DOWN'     # To nearest with ties towards zero
ROUND_HALF_UP   = 'ROUND_HALF_UP'       # To nearest with ties away from zero

ROUNDING_MODES = frozenset((ROUND_CEILING, ROUND_FLOOR, ROUND_DOWN, ROUND_UP,
                            ROUND_HALF_EVEN, ROUND_HALF_DOWN, ROUND_HALF_UP))


RationalTuple = namedtuple('RationalTuple', 'numerator denominator')
pack_double = Struct('>d').pack


#
# Errors
#

class RationalError(ArithmeticError):
    '''All exceptions raised by this module subclass from this.

    Exceptions derived from RationalError must have a linear inheritance from it through
    the first base class if an exception has multiple base classes.  The second base
    class is the builtin exception a caller would expect, so that either can be caught.
    '''


class InvalidArgument(RationalError, TypeError):
    '''Raised when a constructor or operation is given the wrong number, type or shape of
    arguments.'''


class MalformedString(InvalidArgument, ValueError):
    '''Raised when a string is not an integer, a decimal or a fraction.'''


class DivisionByZero(RationalError, ZeroDivisionError):
    '''Raised when a denominator would be zero, including division by a zero value.'''


# When an integer quotient drops a remainder these indicate what fraction of one the
# remainder represented.
LF_EXACTLY_ZERO = 0
LF_LESS_THAN_HALF = 1
LF_EXACTLY_HALF = 2
LF_MORE_THAN_HALF = 3


#
# Leaf algorithms
#

def gcd(a, b):
    '''Return the greatest common divisor of the integers a and b.  The result is never
    negative, and gcd(0, 0) is 0.'''
    if not isinstance(a, int) or not isinstance(b, int):
        raise InvalidArgument(f'gcd requires integers; got {type(a).__name__} '
                              f'and {type(b).__name__}')
    a, b = abs(a), abs(b)
    while b:
        a, b = b, a % b
    return a


# Decimal text is converted in chunks of this many digits, which keeps every int/str
# conversion below the interpreter's digit limit.
DIGIT_CHUNK = 1000
DIGIT_CHUNK_BASE = 10 ** DIGIT_CHUNK


def _int_to_text(value):
    '''Return the decimal text of an integer of any size.'''
    sign = '-' if value < 0 else ''
    value = abs(value)
    chunks = []
    while value >= DIGIT_CHUNK_BASE:
        value, chunk = divmod(value, DIGIT_CHUNK_BASE)
        chunks.append(f'{chunk:0{DIGIT_CHUNK}d}')
    chunks.append(str(value))
    return sign + ''.join(reversed(chunks))


def _digits_to_int(digits):
    '''Return the value of a string of ASCII decimal digits of any length.  The empty
    string is 0.'''
    value = 0
    for start in range(0, len(digits), DIGIT_CHUNK):
        chunk = digits[start:start + DIGIT_CHUNK]
        value = value * 10 ** len(chunk) + int(chunk)
    return value


# IEEE-754 double precision layout
F64_MANTISSA_BITS = 52
F64_EXPONENT_MAX = 0x7ff
F64_BIAS = 1023
F64_INT_BIT = 1 << F64_MANTISSA_BITS


def decompose(value):
    '''Return a RationalTuple (n, d) exactly equal to the float value, in lowest terms and
    with a positive denominator.

    The value is read from its IEEE-754 encoding; no floating point arithmetic takes
    place.  Infinities and NaNs raise InvalidArgument.
    '''
    if not isinstance(value, float):
        raise InvalidArgument(f'decompose requires a float; got {type(value).__name__}')

    encoding = int.from_bytes(pack_double(value), 'big')
    sign = encoding >> 63
    e_biased = (encoding >> F64_MANTISSA_BITS) & F64_EXPONENT_MAX
    significand = encoding & (F64_INT_BIT - 1)

    if e_biased == F64_EXPONENT_MAX:
        kind = 'a NaN' if significand else 'an infinity'
        raise InvalidArgument(f'cannot convert {kind} to a rational number')

    # Zeroes and subnormals have no integer bit and share the exponent of the smallest
    # normal numbers.
    if e_biased == 0:
        e_biased = 1
    else:
        significand += F64_INT_BIT

    # value = (-1)^sign * significand * 2^exponent
    exponent = e_biased - F64_BIAS - F64_MANTISSA_BITS
    if exponent >= 0:
        n, d = significand << exponent, 1
    else:
        n, d = significand, 1 << -exponent

    divisor = gcd(n, d)
    n //= divisor
    d //= divisor
    if sign:
        n = -n

    module_logger.debug('decompose: %r -> %d/%d', value, n, d)
    return RationalTuple(n, d)


def decimal_to_ratio(text):
    '''Convert a decimal string such as "-12.375" to a RationalTuple equal to it.

    The result is neither reduced nor sign normalized: the denominator is 10 to the
    power of the number of fraction digits.
    '''
    if not isinstance(text, str):
        raise InvalidArgument(f'decimal_to_ratio requires a string; got {type(text).__name__}')
    match = DECIMAL_REGEX.fullmatch(text.strip())
    if match is None:
        raise MalformedString(f'invalid decimal: {text!r}')

    sign, integer, fraction = match.groups()
    denominator = 10 ** len(fraction)
    numerator = _digits_to_int(integer) * denominator + _digits_to_int(fraction)
    if sign == '-':
        numerator = -numerator
    return RationalTuple(numerator, denominator)


def _string_to_ratio(text):
    '''Parse an integer, decimal or fraction string to an unreduced RationalTuple.'''
    if '/' in text:
        halves = text.split('/')
        if len(halves) != 2:
            raise MalformedString(f'invalid fraction: {text!r}')
        left, right = (_string_to_ratio(half) for half in halves)
        result = RationalTuple(left.numerator * right.denominator,
                               left.denominator * right.numerator)
    elif '.' in text:
        result = decimal_to_ratio(text)
    else:
        match = INTEGER_REGEX.fullmatch(text.strip())
        if match is None:
            raise MalformedString(f'invalid rational number: {text!r}')
        sign, digits = match.groups()
        value = _digits_to_int(digits)
        result = RationalTuple(-value if sign == '-' else value, 1)

    if module_logger.isEnabledFor(logging.DEBUG):
        module_logger.debug('parsed %r as %s/%s', text, _int_to_text(result.numerator),
                            _int_to_text(result.denominator))
    return result


#
# Input variants.  Each reduces its argument(s) to a raw RationalTuple that the
# canonicalizing constructor then normalizes.
#

def _instance_of(kind):
    def validator(instance, attribute, value):
        if not isinstance(value, kind):
            raise InvalidArgument(f'{type(instance).__name__}.{attribute.name} must be '
                                  f'a {kind.__name__}; got {type(value).__name__}')
    return validator


def _integral(instance, attribute, value):
    if isinstance(value, int):
        return
    if isinstance(value, float):
        if value.is_integer():
            return
        got = repr(value)
    else:
        got = type(value).__name__
    raise InvalidArgument(f'{type(instance).__name__}.{attribute.name} must be an integer '
                          f'or an integer-valued float; got {got}')


@attr.s(slots=True, frozen=True)
class FloatInput:
    '''A float, converted exactly from its binary encoding.'''

    value = attr.ib(validator=_instance_of(float))

    def ratio(self):
        return decompose(self.value)


@attr.s(slots=True, frozen=True)
class IntegerInput:
    value = attr.ib(validator=_instance_of(int))

    def ratio(self):
        return RationalTuple(self.value, 1)


@attr.s(slots=True, frozen=True)
class StringInput:
    '''An integer ("-12"), decimal ("-1.25") or fraction ("3/4", "1.5/-2") string.'''

    text = attr.ib(validator=_instance_of(str))

    def ratio(self):
        return _string_to_ratio(self.text)


@attr.s(slots=True, frozen=True)
class PairInput:
    '''An explicit numerator and denominator.  Each must be an int or an integer-valued
    float.'''

    numerator = attr.ib(validator=_integral)
    denominator = attr.ib(validator=_integral)

    def ratio(self):
        return RationalTuple(int(self.numerator), int(self.denominator))


_single_variants = {
    float: FloatInput,
    int: IntegerInput,
    str: StringInput,
}


def classify(args):
    '''Return the input variant for the positional arguments of a RationalNumber
    constructor call.'''
    if len(args) == 1:
        value = args[0]
        for kind, variant in _single_variants.items():
            if isinstance(value, kind):
                return variant(value)
        raise InvalidArgument(f'cannot make a RationalNumber from {type(value).__name__}')
    if len(args) == 2:
        return PairInput(*args)
    raise InvalidArgument(f'RationalNumber takes 1 or 2 arguments; got {len(args)}')


#
# Operand handling
#

@runtime_checkable
class RationalLike(Protocol):
    '''Anything with integer numerator and denominator attributes.  RationalNumber,
    RationalTuple, int and fractions.Fraction all qualify.'''

    numerator: int
    denominator: int


def _is_rational_like(value):
    return (isinstance(value, RationalLike) and isinstance(value.numerator, int)
            and isinstance(value.denominator, int))


def _operand_parts(value):
    '''Return the (numerator, denominator) of a RationalLike operand.'''
    if not _is_rational_like(value):
        raise InvalidArgument(f'{type(value).__name__} operand has no integer numerator '
                              'and denominator')
    if value.denominator == 0:
        raise DivisionByZero(f'{type(value).__name__} operand has a zero denominator')
    return value.numerator, value.denominator


def _accepts(other):
    '''Return True if other can be an operand of a RationalNumber operator.

    Plain tuples raise InvalidArgument.  Otherwise tuple concatenation or repetition would
    be used, as RationalNumber is a tuple underneath.
    '''
    if _is_rational_like(other):
        return True
    if isinstance(other, tuple):
        raise InvalidArgument(f'unsupported operand type for RationalNumber: '
                              f'{type(other).__name__}')
    return False


def lost_fraction(remainder, divisor):
    '''Return which of the LF_ constants describes remainder / divisor, where 0 <= remainder
    < divisor.'''
    if remainder == 0:
        return LF_EXACTLY_ZERO
    twice = remainder * 2
    if twice < divisor:
        return LF_LESS_THAN_HALF
    if twice == divisor:
        return LF_EXACTLY_HALF
    return LF_MORE_THAN_HALF


def round_up(rounding, lost_fraction, sign, is_odd):
    '''Return True if, when a quotient is inexact, its magnitude should be rounded up
    (i.e., away from zero).

    sign is the sign of the quotient, and is_odd indicates if the truncated quotient is
    odd, which is needed for ties-to-even rounding.
    '''
    if lost_fraction == LF_EXACTLY_ZERO:
        return False

    if rounding == ROUND_HALF_EVEN:
        if lost_fraction == LF_EXACTLY_HALF:
            return is_odd
        else:
            return lost_fraction == LF_MORE_THAN_HALF
    elif rounding == ROUND_CEILING:
        return not sign
    elif rounding == ROUND_FLOOR:
        return sign
    elif rounding == ROUND_DOWN:
        return False
    elif rounding == ROUND_UP:
        return True
    elif rounding == ROUND_HALF_DOWN:
        return lost_fraction == LF_MORE_THAN_HALF
    else:
        return lost_fraction != LF_LESS_THAN_HALF


def _to_integer(value, rounding):
    '''Return the RationalLike value rounded to a Python int.'''
    if rounding not in ROUNDING_MODES:
        raise InvalidArgument(f'unknown rounding mode {rounding!r}')
    n, d = _operand_parts(value)
    if d < 0:
        n, d = -n, -d
    sign = n < 0
    quotient, remainder = divmod(abs(n), d)
    if round_up(rounding, lost_fraction(remainder, d), sign, bool(quotient & 1)):
        quotient += 1
    return -quotient if sign else quotient


# For the hash of a rational to agree with that of an equal int, float or Fraction the
# rules for numeric hashes in the Python documentation are followed.
_PyHASH_MODULUS = sys.hash_info.modulus
_PyHASH_INF = sys.hash_info.inf


class RationalNumber(namedtuple('RationalNumber', 'numerator denominator')):
    '''An exact rational number.

    Values are always in canonical form: the denominator is positive, and the numerator
    and denominator have no common factor.  Zero is 0/1.  Values are immutable; every
    operation returns a new value.

    The constructor accepts:

        RationalNumber(0.1)          the exact value of the float's binary encoding
        RationalNumber(7)            an integer
        RationalNumber('-1.25')      an integer, decimal or fraction string
        RationalNumber('3/4')
        RationalNumber(6, -8)        a numerator and denominator; ints or integer floats

    Anything else raises InvalidArgument.  A zero denominator raises DivisionByZero.

    Although a namedtuple underneath, a value does not behave as a sequence in arithmetic
    or comparisons: a plain tuple operand raises InvalidArgument, a plain tuple is never
    equal to a value, and the ordering operators raise TypeError.
    '''

    __slots__ = ()

    def __new__(cls, *args):
        return cls._canonical(*classify(args).ratio())

    @classmethod
    def _canonical(cls, numerator, denominator):
        '''Construct a value from an integer numerator and denominator, normalizing the sign
        and reducing to lowest terms.  All construction passes through here.'''
        if denominator == 0:
            raise DivisionByZero('zero denominator')
        if denominator < 0:
            numerator, denominator = -numerator, -denominator
        divisor = gcd(numerator, denominator)
        return super().__new__(cls, numerator // divisor, denominator // divisor)

    @classmethod
    def _make(cls, iterable):
        return cls(*iterable)

    @classmethod
    def from_float(cls, value):
        '''Return the exact value of a float.'''
        return cls._canonical(*FloatInput(value).ratio())

    @classmethod
    def from_int(cls, value):
        return cls._canonical(*IntegerInput(value).ratio())

    @classmethod
    def from_string(cls, text):
        '''Parse an integer, decimal or fraction string.'''
        return cls._canonical(*StringInput(text).ratio())

    @classmethod
    def from_pair(cls, numerator, denominator):
        return cls._canonical(*PairInput(numerator, denominator).ratio())

    ##
    ## Arithmetic.  Operands are any RationalLike; results are canonical.
    ##

    @staticmethod
    def add(a, b):
        '''Return a + b.'''
        an, ad = _operand_parts(a)
        bn, bd = _operand_parts(b)
        return RationalNumber._canonical(an * bd + ad * bn, ad * bd)

    @staticmethod
    def sub(a, b):
        '''Return a - b.'''
        an, ad = _operand_parts(a)
        bn, bd = _operand_parts(b)
        return RationalNumber._canonical(an * bd - ad * bn, ad * bd)

    @staticmethod
    def mul(a, b):
        '''Return a * b.'''
        an, ad = _operand_parts(a)
        bn, bd = _operand_parts(b)
        return RationalNumber._canonical(an * bn, ad * bd)

    @staticmethod
    def div(a, b):
        '''Return a / b.  Raises DivisionByZero if b is zero.'''
        an, ad = _operand_parts(a)
        bn, bd = _operand_parts(b)
        if bn == 0:
            raise DivisionByZero('division by zero')
        return RationalNumber._canonical(an * bd, ad * bn)

    @staticmethod
    def mod(a, b):
        '''Return a - b * floor(a / b).  A non-zero result has the sign of b.'''
        return RationalNumber.sub(a, RationalNumber.mul(b, RationalNumber.floor(
            RationalNumber.div(a, b))))

    @staticmethod
    def trunc(a):
        '''Return a rounded towards zero.'''
        return RationalNumber._canonical(_to_integer(a, ROUND_DOWN), 1)

    @staticmethod
    def floor(a):
        '''Return the greatest integer not greater than a.'''
        return RationalNumber._canonical(_to_integer(a, ROUND_FLOOR), 1)

    @staticmethod
    def ceil(a):
        '''Return the least integer not less than a.'''
        return RationalNumber._canonical(_to_integer(a, ROUND_CEILING), 1)

    @staticmethod
    def round(a, rounding=ROUND_HALF_UP):
        '''Return a rounded to an integer.

        rounding is one of the ROUND_ constants.  The default rounds ties away from zero.
        '''
        return RationalNumber._canonical(_to_integer(a, rounding), 1)

    ##
    ## Conversions
    ##

    def to_float(self):
        '''Return the nearest float.  Exact for values that were constructed from a float.'''
        return self.numerator / self.denominator

    def to_string(self):
        return f'{_int_to_text(self.numerator)}/{_int_to_text(self.denominator)}'

    def as_integer_ratio(self):
        return (self.numerator, self.denominator)

    def is_integer(self):
        return self.denominator == 1

    def __float__(self):
        return self.to_float()

    def __int__(self):
        return _to_integer(self, ROUND_DOWN)

    def __str__(self):
        return self.to_string()

    def __repr__(self):
        return f"RationalNumber('{self}')"

    ##
    ## Python numeric protocol
    ##

    def __add__(self, other):
        if not _accepts(other):
            return NotImplemented
        return RationalNumber.add(self, other)

    def __radd__(self, other):
        if not _accepts(other):
            return NotImplemented
        return RationalNumber.add(other, self)

    def __sub__(self, other):
        if not _accepts(other):
            return NotImplemented
        return RationalNumber.sub(self, other)

    def __rsub__(self, other):
        if not _accepts(other):
            return NotImplemented
        return RationalNumber.sub(other, self)

    def __mul__(self, other):
        if not _accepts(other):
            return NotImplemented
        return RationalNumber.mul(self, other)

    def __rmul__(self, other):
        if not _accepts(other):
            return NotImplemented
        return RationalNumber.mul(other, self)

    def __truediv__(self, other):
        if not _accepts(other):
            return NotImplemented
        return RationalNumber.div(self, other)

    def __rtruediv__(self, other):
        if not _accepts(other):
            return NotImplemented
        return RationalNumber.div(other, self)

    def __floordiv__(self, other):
        if not _accepts(other):
            return NotImplemented
        return _to_integer(RationalNumber.div(self, other), ROUND_FLOOR)

    def __rfloordiv__(self, other):
        if not _accepts(other):
            return NotImplemented
        return _to_integer(RationalNumber.div(other, self), ROUND_FLOOR)

    def __mod__(self, other):
        if not _accepts(other):
            return NotImplemented
        return RationalNumber.mod(self, other)

    def __rmod__(self, other):
        if not _accepts(other):
            return NotImplemented
        return RationalNumber.mod(other, self)

    def __divmod__(self, other):
        if not _accepts(other):
            return NotImplemented
        return self // other, self % other

    def __rdivmod__(self, other):
        if not _accepts(other):
            return NotImplemented
        return other // self, other % self

    def __neg__(self):
        return RationalNumber._canonical(-self.numerator, self.denominator)

    def __pos__(self):
        return self

    def __abs__(self):
        return RationalNumber._canonical(abs(self.numerator), self.denominator)

    def __bool__(self):
        return self.numerator != 0

    def __trunc__(self):
        return _to_integer(self, ROUND_DOWN)

    def __floor__(self):
        return _to_integer(self, ROUND_FLOOR)

    def __ceil__(self):
        return _to_integer(self, ROUND_CEILING)

    def __round__(self, ndigits=None):
        '''Round ties away from zero.  With ndigits, return a RationalNumber rounded to that
        many decimal places.'''
        rounding = ROUND_HALF_UP
        if ndigits is None:
            return _to_integer(self, rounding)
        if ndigits >= 0:
            shift = RationalTuple(10 ** ndigits, 1)
        else:
            shift = RationalTuple(1, 10 ** -ndigits)
        scaled = RationalNumber.mul(self, shift)
        return RationalNumber.div(RationalNumber.round(scaled, rounding), shift)

    ##
    ## Equality.  There is no ordering.
    ##

    def __eq__(self, other):
        if isinstance(other, float):
            if not isfinite(other):
                return False
            other = decompose(other)
        elif isinstance(other, tuple) and not _is_rational_like(other):
            return False
        elif not _is_rational_like(other):
            return NotImplemented
        if other.denominator == 0:
            return False
        return self.numerator * other.denominator == other.numerator * self.denominator

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __lt__(self, other):
        raise TypeError('ordering comparisons are not supported by RationalNumber')

    __le__ = __gt__ = __ge__ = __lt__

    def __hash__(self):
        try:
            dinv = pow(self.denominator, -1, _PyHASH_MODULUS)
        except ValueError:
            # No modular inverse
            hash_ = _PyHASH_INF
        else:
            hash_ = hash(hash(abs(self.numerator)) * dinv)
        result = hash_ if self.numerator >= 0 else -hash_
        return -2 if result == -1 else result

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


add = RationalNumber.add
sub = RationalNumber.sub
mul = RationalNumber.mul
div = RationalNumber.div
mod = RationalNumber.mod
trunc = RationalNumber.trunc
floor = RationalNumber.floor
ceil = RationalNumber.ceil
round = RationalNumber.round


INTEGER_REGEX = re.compile('([-+]?)([0-9]+)', re.ASCII)
DECIMAL_REGEX = re.compile(
    # sign[opt] dec-integer[opt] . fraction
    '([-+]?)([0-9]*)\\.([0-9]+)',
    re.ASCII
)
