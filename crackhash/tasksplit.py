"""Splitting a hash crack task into a number of worker parts."""

from __future__ import annotations

import logging
import math
from enum import Enum

from .geom import sum_of_geom_series

logger = logging.getLogger(__name__)


class InvalidWordMaxLengthError(ValueError):
    def __init__(self) -> None:
        super().__init__("invalid word max length")


class InvalidAlphabetLengthError(ValueError):
    def __init__(self) -> None:
        super().__init__("invalid alphabet length")


class InvalidStrategyError(ValueError):
    def __init__(self) -> None:
        super().__init__("invalid strategy")


class _Strategy(str, Enum):
    CHUNK_BASED = "chunk-based"


class ChunkBasedSplitter:
    """Splits the word space into parts of at most chunk_size words."""

    def __init__(self, chunk_size: int) -> None:
        self.chunk_size = chunk_size

    def split(self, word_max_length: int, alphabet_length: int) -> int:
        """Return the number of parts needed to cover every word."""
        logger.info(
            "split task: word_max_length=%d alphabet_length=%d",
            word_max_length,
            alphabet_length,
        )

        if word_max_length <= -1:
            raise InvalidWordMaxLengthError()
        if alphabet_length <= -1:
            raise InvalidAlphabetLengthError()

        word_count = sum_of_geom_series(alphabet_length, alphabet_length, word_max_length)
        parts = math.ceil(float(word_count) / float(self.chunk_size))

        logger.info("number of subtasks calculated: %d", parts)
        return parts


def create_splitter(strategy: str, chunk_size: int) -> ChunkBasedSplitter:
    """Build the splitter for the named strategy."""
    try:
        chosen = _Strategy(strategy)
    except ValueError:
        raise InvalidStrategyError() from None

    if chosen is _Strategy.CHUNK_BASED:
        return ChunkBasedSplitter(chunk_size)
    raise InvalidStrategyError()