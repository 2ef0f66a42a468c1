"""
Map and reduce functions for tests that run on process pools.

Worker processes import these by module path, so they must live at the top
level of an importable module.
"""
import os
import time


def split_words(name, text):
    return [(word, 1) for word in text.split()]


def count(word, ones):
    return [sum(ones)]


def fail_on_b(key, value):
    if key == "b":
        raise ValueError("boom")
    return [(key, value)]


def keep_values(key, values):
    return values


def exit_worker(key, value):
    os._exit(3)


# A module-level lambda cannot be imported by name, so dill ships it by value.
square = lambda key, value: [(key, value * value)]


def report_pid(key, value):
    return [(key, os.getpid())]


def slow(key, value):
    time.sleep(2)
    return [(key, value)]
