"""Discrete event encodings used to pre/post-process event sequences.

Three pure conversions between integer event codes and fixed-width
vectors:

* :func:`ints_to_bits`: integer → ``depth``-bit vector (LSB first),
* :func:`bits_to_ints`: bit vector → integer,
* :func:`ints_to_one_hot`: integer → one-hot vector.

The bit encoding reserves the all-zero vector: the integer ``0`` is
written with its most-significant bit set, so that a "no event" step is
still distinguishable from padding.  Consequently

>>> bits_to_ints(ints_to_bits([0], 4))
[8]

which is intentional and must not be "fixed".
"""

from __future__ import annotations

from typing import Iterable, Sequence


def ints_to_bits(ints: Sequence[int], depth: int) -> list[list[int]]:
    """Encode each integer as its low ``depth`` bits, least-significant first.

    ``0`` maps to a vector whose bit ``depth - 1`` is forced to 1.
    """
    if depth < 1:
        raise ValueError(f"depth must be >= 1, got {depth}")

    bits: list[list[int]] = []
    for value in ints:
        value = int(value)
        b = [(value >> d) & 1 for d in range(depth)]
        if value == 0:
            b[depth - 1] = 1
        bits.append(b)
    return bits


def bits_to_ints(bits: Iterable[Iterable[int]]) -> list[int]:
    """Reassemble integers from LSB-first bit vectors.

    Rows may be lists, numpy arrays or tensors; every element is cast
    with :func:`int` so float ``0.``/``1.`` samples are accepted.
    """
    ints: list[int] = []
    for row in bits:
        total = 0
        for d, bit in enumerate(row):
            total += int(bit) << d
        ints.append(total)
    return ints


def ints_to_one_hot(ints: Sequence[int], depth: int) -> list[list[int]]:
    """Standard one-hot expansion: 1 at index ``ints[i]``, 0 elsewhere."""
    one_hot: list[list[int]] = []
    for value in ints:
        value = int(value)
        if not 0 <= value < depth:
            raise ValueError(f"Value {value} out of range for depth {depth}")
        one_hot.append([1 if d == value else 0 for d in range(depth)])
    return one_hot
