"""Shared fixtures: small `git log --parents` transcripts.

History used throughout (newest first):

    D  merge of B and C
    C  feature work, parent A
    B  second commit on main, parent A
    A  initial commit
"""

import pytest

SHA_A = "a" * 40
SHA_B = "b" * 40
SHA_C = "c" * 40
SHA_D = "d" * 40


def log_entry(sha, parents=(), subject="", author="Ann <ann@example.com>", date="Thu Apr 22 06:51:03 2010 -0700"):
    lines = ["commit " + " ".join([sha, *parents])]
    if len(parents) > 1:
        lines.append("Merge: " + " ".join(p[:7] for p in parents))
    lines += [f"Author: {author}", f"Date:   {date}", "", f"    {subject}", ""]
    return "\n".join(lines) + "\n"


@pytest.fixture
def make_log():
    """Build log text from (sha, parents, subject) tuples."""

    def _make(*entries):
        return "".join(log_entry(sha, parents, subject) for sha, parents, subject in entries)

    return _make


@pytest.fixture
def full_log(make_log):
    return make_log(
        (SHA_D, (SHA_B, SHA_C), "Merge branch 'feature'"),
        (SHA_C, (SHA_A,), "Feature work"),
        (SHA_B, (SHA_A,), "Second"),
        (SHA_A, (), "Initial"),
    )


@pytest.fixture
def base_log(make_log):
    return make_log(
        (SHA_B, (SHA_A,), "Second"),
        (SHA_A, (), "Initial"),
    )
