import uuid

import pytest

from app.releases.external_id import encode_external_id, parse_external_id
from services.errors import InvalidRequestError


def test_encoded_id_carries_release_and_winnings():
    release_id, w1, w2 = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    value = encode_external_id(release_id, [w1, w2])

    assert value == f"{release_id}|{w1},{w2}"
    assert parse_external_id(value) == (release_id, [w1, w2])


def test_bare_release_id_has_no_winnings():
    release_id = uuid.uuid4()
    assert parse_external_id(f" {release_id} ") == (release_id, [])


@pytest.mark.parametrize("value", [None, "", "   ", "not-a-uuid", f"{uuid.uuid4()}|nope"])
def test_bad_values_rejected(value):
    with pytest.raises(InvalidRequestError):
        parse_external_id(value)
