import uuid

import pytest


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()
