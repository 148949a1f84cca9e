from __future__ import annotations

import pytest

from helpers import LISINOPRIL, FakeIdentityCatalog


@pytest.fixture
def lisinopril_catalog() -> FakeIdentityCatalog:
    return FakeIdentityCatalog(
        exact={"lisinopril 10 mg oral tablet": ["314076"], "lisinopril": ["314076"]},
        properties={"314076": LISINOPRIL},
    )
