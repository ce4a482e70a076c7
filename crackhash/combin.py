"""Enumeration of all words over an alphabet, shortest words first."""

from __future__ import annotations

import threading
from typing import Iterator


class EmptyAlphabetError(ValueError):
    def __init__(self) -> None:
        super().__init__("alphabet must not be empty")


class InvalidMaxLengthError(ValueError):
    def __init__(self) -> None:
        super().__init__("maxLength must be positive")


class InvalidStartIndexError(ValueError):
    def __init__(self) -> None:
        super().__init__("startIndex must be non-negative")


class StartIndexOutOfRangeError(ValueError):
    def __init__(self) -> None:
        super().__init__("startIndex exceeds the total number of combinations")


class AlphabetIterator:
    """Iterates over every word of length 1..max_length built from alphabet.

    Words are produced length by length, each length in lexicographic order of
    alphabet positions. ``start_index`` skips that many words, so the first
    word produced is the one at position ``start_index``.
    """

    def __init__(self, alphabet: str, max_length: int, start_index: int = 0) -> None:
        if not alphabet:
            raise EmptyAlphabetError()
        if max_length <= 0:
            raise InvalidMaxLengthError()
        if start_index < 0:
            raise InvalidStartIndexError()

        self._alphabet = alphabet
        self._max_length = max_length
        self._digits: list[int] = []
        self._started = False
        self._done = False
        self._lock = threading.Lock()

        if start_index:
            self._seek(start_index)

    def _seek(self, steps: int) -> None:
        """Position the iterator as if advance() had been called `steps` times."""
        base = len(self._alphabet)
        total = sum(base**length for length in range(1, self._max_length + 1))
        if steps > total:
            raise StartIndexOutOfRangeError()

        offset = steps - 1
        length = 1
        while offset >= base**length:
            offset -= base**length
            length += 1

        digits = []
        for _ in range(length):
            offset, digit = divmod(offset, base)
            digits.append(digit)
        digits.reverse()

        self._digits = digits
        self._started = True

    def advance(self) -> bool:
        """Move to the next word; return False once every word has been produced."""
        with self._lock:
            if self._done:
                return False

            if not self._started:
                self._started = True
                self._digits = [0]
                return True

            base = len(self._alphabet)
            for position in reversed(range(len(self._digits))):
                if self._digits[position] + 1 < base:
                    self._digits[position] += 1
                    return True
                self._digits[position] = 0

            if len(self._digits) < self._max_length:
                self._digits = [0] * (len(self._digits) + 1)
                return True

            self._done = True
            return False

    def current(self) -> str:
        """Return the word the iterator is positioned at."""
        with self._lock:
            return "".join(self._alphabet[digit] for digit in self._digits)

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        if not self.advance():
            raise StopIteration
        return self.current()