"""Sums of geometric series bounded to the range of a signed 64-bit integer."""

INT_MIN = -(2**63)
INT_MAX = 2**63 - 1


class GeomDivisionByZeroError(ZeroDivisionError):
    """Raised when the common ratio makes the closed-form denominator zero."""

    def __init__(self) -> None:
        super().__init__("division by zero: common ratio r cannot be 1 in this case")


class IntLimitsError(OverflowError):
    """Raised when a result does not fit into a signed 64-bit integer."""

    def __init__(self) -> None:
        super().__init__("result exceeds the limits of int")


def _euclidean_div(numerator: int, denominator: int) -> int:
    """Integer division whose remainder is never negative."""
    if denominator > 0:
        return numerator // denominator
    return -(numerator // -denominator)


def _checked(value: int) -> int:
    if not INT_MIN <= value <= INT_MAX:
        raise IntLimitsError()
    return value


def sum_of_geom_series(a: int, r: int, n: int) -> int:
    """Return a * (1 - r**n) / (1 - r), the sum of n terms starting at a.

    A non-positive n gives an empty series. Raises IntLimitsError when the
    result does not fit into a signed 64-bit integer.
    """
    if r == 1:
        return _checked(a * n)

    r_power_n = r**n if n > 0 else 1
    numerator = 1 - r_power_n
    denominator = 1 - r
    if denominator == 0:
        raise GeomDivisionByZeroError()

    return _checked(a * _euclidean_div(numerator, denominator))