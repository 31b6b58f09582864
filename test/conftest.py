from collections.abc import Iterator
import sys

import pytest

from .console import Console


@pytest.fixture
def console() -> 'Iterator[Console]':
    # Console assertions record failures instead of raising; surface them to pytest.
    console = Console(sys.stdout, verbose=True)
    yield console
    assert console.failed_assertions == 0, f'{console.failed_assertions} failed assertion(s)'
