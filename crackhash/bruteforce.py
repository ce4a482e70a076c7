"""Brute forcing MD5 hashes over one chunk of the word space."""

from __future__ import annotations

import hashlib
import logging
from enum import Enum
from itertools import islice
from typing import Sequence

from .combin import AlphabetIterator

logger = logging.getLogger(__name__)

_PROGRESS_STEP = 100_000


class InvalidStrategyError(ValueError):
    def __init__(self) -> None:
        super().__init__("invalid strategy")


class _Strategy(str, Enum):
    CHUNK_BASED = "chunk-based"


class ChunkBasedBruteForce:
    """Checks the words of one part, chunk_size words per part."""

    def __init__(self, chunk_size: int) -> None:
        self.chunk_size = chunk_size

    def brute_force_md5(
        self,
        target_hash: str,
        alphabet: Sequence[str],
        max_length: int,
        part_number: int,
    ) -> list[str]:
        """Return the words of the given part whose MD5 hex digest is target_hash."""
        symbols = "".join(alphabet)
        logger.info(
            "brute force md5: hash=%s max_length=%d alphabet=%s part=%d chunk_size=%d",
            target_hash,
            max_length,
            symbols,
            part_number,
            self.chunk_size,
        )

        words = AlphabetIterator(symbols, max_length, part_number * self.chunk_size)

        results = []
        for processed, word in enumerate(islice(words, max(self.chunk_size, 0)), start=1):
            if hashlib.md5(word.encode()).hexdigest() == target_hash:
                results.append(word)

            if processed % _PROGRESS_STEP == 0:
                logger.debug(
                    "hash=%s max_length=%d part=%d processed by %.2f%%",
                    target_hash,
                    max_length,
                    part_number,
                    100 * processed / self.chunk_size,
                )

        return results


def create_brute_force(strategy: str, chunk_size: int) -> ChunkBasedBruteForce:
    """Build the brute force service for the named strategy."""
    try:
        chosen = _Strategy(strategy)
    except ValueError:
        raise InvalidStrategyError() from None

    if chosen is _Strategy.CHUNK_BASED:
        return ChunkBasedBruteForce(chunk_size)
    raise InvalidStrategyError()