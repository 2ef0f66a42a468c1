"""
An example counting the words of a text with the 'process' backend.
"""
import time

from mrpool import mapreduce
from mrpool.samples import wordcount as wc

TEXT = """\
It was the best of times, it was the worst of times,
it was the age of wisdom, it was the age of foolishness,
it was the epoch of belief, it was the epoch of incredulity,
it was the season of Light, it was the season of Darkness,
it was the spring of hope, it was the winter of despair.
"""


def main():
    """Counts the words of TEXT inline and on a pool of 4 worker processes."""
    # Two lines per map block
    blocks = wc.slab(TEXT * 200, 2)

    for threads in (0, 4):
        start_time = time.perf_counter()
        counts = mapreduce(blocks, wc.map, wc.reduce, threads, backend="process")
        total_time = time.perf_counter() - start_time

        print(f"\n--- {threads} workers: {len(counts)} distinct words in {total_time:.2f} seconds ---")
        for word, count in wc.top_words(counts, 5):
            print(f"{word}\t{count}")


if __name__ == "__main__":
    main()
