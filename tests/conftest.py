import pytest

from batterystory.config import DEFAULT_CONTEXT
from batterystory.generator import generate_day


@pytest.fixture(scope="session")
def context():
    return DEFAULT_CONTEXT


@pytest.fixture(scope="session")
def day(context):
    """The default story day, generated once for the whole run."""
    return generate_day(context)
