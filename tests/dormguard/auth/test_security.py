from dormguard.auth.security import hash_password, verify_password


def test_hash_is_salted_and_verifies() -> None:
    first = hash_password('secret1')
    second = hash_password('secret1')

    assert first != second
    assert verify_password('secret1', first)
    assert verify_password('secret1', second)


def test_wrong_password_does_not_verify() -> None:
    assert not verify_password('secret2', hash_password('secret1'))


def test_malformed_stored_hash_does_not_verify() -> None:
    assert not verify_password('secret1', 'plain-text-password')


def test_passwords_longer_than_bcrypt_limit_are_accepted() -> None:
    long_password = 'x' * 100

    assert verify_password(long_password, hash_password(long_password))
