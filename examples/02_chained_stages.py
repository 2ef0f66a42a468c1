"""
An example chaining stages by hand on a shared pool: count words, then group
the words by how often they occur.
"""
from mrpool import create_pool, run_stage
from mrpool.samples import wordcount as wc

TEXT = """\
the quick brown fox jumps over the lazy dog
the dog sleeps and the fox runs
"""


def by_count(word, counts):
    return [(counts[0], word)]


def main():
    blocks = wc.slab(TEXT, 1)

    # One pool seeded with every function of the pipeline
    with create_pool("thread", 2, [wc.map, wc.reduce, by_count]) as pool:
        words = run_stage(blocks, wc.map, pool=pool)
        counts = run_stage(words, wc.reduce, "reduce", pool=pool)
        groups = run_stage(counts, by_count, pool=pool)

    for count in sorted(groups, reverse=True):
        print(f"{count}\t{', '.join(sorted(groups[count]))}")


if __name__ == "__main__":
    main()
