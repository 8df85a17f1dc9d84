import pytest

from backend.auth import jwt_handler
from backend.auth.passwords import hash_password, verify_password
from backend.auth.policy import POLICY, is_allowed, require


@pytest.mark.parametrize(
    ('role', 'resource', 'action', 'expected'),
    [
        ('patient', 'appointments', 'book', True),
        ('doctor', 'appointments', 'book', False),
        ('admin', 'appointments', 'book', False),
        ('doctor', 'availability', 'update', True),
        ('patient', 'availability', 'update', False),
        ('admin', 'appointments', 'list_own', False),
        ('patient', 'appointments', 'cancel', True),
        ('doctor', 'users', 'list', False),
        ('admin', 'admin', 'set_appointment_status', True),
        (None, 'profile', 'read', False),
    ],
)
def test_policy_table(role, resource: str, action: str, expected: bool) -> None:
    assert is_allowed(role, resource, action) is expected


def test_admin_only_actions() -> None:
    admin_only = {pair for pair, roles in POLICY.items() if roles == frozenset({'admin'})}

    assert ('doctors', 'create') in admin_only
    assert ('users', 'delete') in admin_only
    assert ('admin', 'summary') in admin_only


def test_unknown_pair_is_a_programming_error() -> None:
    with pytest.raises(KeyError):
        is_allowed('admin', 'billing', 'refund')

    with pytest.raises(KeyError):
        require('billing', 'refund')


def test_token_round_trip() -> None:
    token = jwt_handler.create_access_token(subject='7', role='doctor', expires_minutes=5)

    claims = jwt_handler.decode_access_token(token)

    assert claims['sub'] == '7'
    assert claims['role'] == 'doctor'
    assert claims['exp'] - claims['iat'] == 300


def test_password_hashing() -> None:
    hashed = hash_password('correct horse')

    assert hashed != 'correct horse'
    assert verify_password('correct horse', hashed)
    assert not verify_password('wrong horse', hashed)
    assert not verify_password('correct horse', None)
