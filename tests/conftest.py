import pytest

from sidecar.anonymization.models import Participant
from sidecar.anonymization.resolver import EntityResolver
from sidecar.crypto.aes_gcm_custodian import AesGcmKeyCustodian


@pytest.fixture()
def custodian() -> AesGcmKeyCustodian:
    """Unlocked custodian with a fresh random key."""
    return AesGcmKeyCustodian.from_encoded_key(AesGcmKeyCustodian.generate_key())


@pytest.fixture()
def locked_custodian() -> AesGcmKeyCustodian:
    return AesGcmKeyCustodian()


@pytest.fixture(scope="session")
def resolver() -> EntityResolver:
    """Shared resolver; building the ICU transliterator is not free."""
    return EntityResolver()


@pytest.fixture()
def participants() -> list[Participant]:
    return [
        Participant(
            id="p1",
            name="Jane Doe",
            email="jane.doe@corp.com",
            slack_id="U123ABC",
            role="Engineering Manager",
        ),
        Participant(
            id="p2",
            name="Bob Smith",
            email="bob@corp.com",
            role="Staff Engineer",
            stated_position="Ship the rewrite first",
        ),
    ]
