import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def affiliates_bed():
    from affiliates.domain import affiliates

    bed = DomainFixture(affiliates)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(affiliates_bed):
    with affiliates_bed.domain_context():
        yield
