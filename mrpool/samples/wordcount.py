"""
Word count, the classic map-reduce example.

Sample usage:

.. code-block:: python

    from mrpool import mapreduce
    from mrpool.samples import wordcount as wc

    # Split the input text in blocks of 100 lines
    blocks = wc.slab(text, 100)
    # Count the words on 4 threads
    counts = mapreduce(blocks, wc.map, wc.reduce, 4)
    # The ten most frequent words
    for word, count in wc.top_words(counts, 10):
        print(f"{word}\\t{count}")
"""
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..core.errors import ArgumentError


def map(name: Any, text: str) -> Iterator[Tuple[str, int]]:
    """
    Emits a ``(word, 1)`` pair for every word of a text block.

    Words are split on whitespace, stripped of non-alphabetic characters and
    lowercased; words left empty are dropped. The block name is unused.
    """
    for word in text.split():
        w = "".join(ch for ch in word if ch.isalpha()).lower()
        if w:
            yield w, 1


def reduce(word: str, counts: List[int]) -> List[int]:
    """Sums the occurrence counts of a word."""
    return [sum(counts)]


def slab(text: str, blocksize: int, delimiter: str = "\n") -> Dict[int, str]:
    """
    Cuts a text into blocks that can be fed to the word-count map stage.

    The text is split on `delimiter` and every run of `blocksize` items is
    joined with a single space. Blocks are keyed by the index of their first
    item, so keys are 0, blocksize, 2 * blocksize, ...
    """
    if isinstance(blocksize, bool) or not isinstance(blocksize, int) or blocksize <= 0:
        raise ArgumentError(f"blocksize must be a positive integer, got {blocksize!r}")

    items = text.split(delimiter)
    return {i: " ".join(items[i:i + blocksize]) for i in range(0, len(items), blocksize)}


def top_words(counts: Dict[str, List[int]], limit: Optional[int] = None) -> List[Tuple[str, int]]:
    """
    Sorts reduced word counts from most to least frequent.

    Ties are broken alphabetically. With a `limit`, only that many words are
    returned.
    """
    ranked = sorted(((word, values[0]) for word, values in counts.items()), key=lambda wc: (-wc[1], wc[0]))
    return ranked if limit is None else ranked[:limit]
