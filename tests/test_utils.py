from app.utils import (
    TOKEN_ALPHABET,
    hash_password,
    imdb_title_url,
    page_count,
    random_string,
    utcnow,
    verify_password,
)


def test_random_string_uses_alphanumerics():
    token = random_string(20)
    assert len(token) == 20
    assert set(token) <= set(TOKEN_ALPHABET)


def test_hash_password_round_trip_and_salting():
    first = hash_password("hunter2", iterations=1_000)
    second = hash_password("hunter2", iterations=1_000)

    assert first != second
    assert verify_password("hunter2", first)
    assert not verify_password("hunter3", first)


def test_verify_password_rejects_malformed_hashes():
    assert not verify_password("secret", "")
    assert not verify_password("secret", "bcrypt$1$salt$abc")
    assert not verify_password("secret", "pbkdf2_sha256$many$salt$abc")


def test_page_count():
    assert page_count(0, 20) == 0
    assert page_count(1, 20) == 1
    assert page_count(20, 20) == 1
    assert page_count(21, 20) == 2


def test_imdb_title_url():
    assert imdb_title_url("tt0944947") == "https://www.imdb.com/title/tt0944947"
    assert imdb_title_url(None) == ""
    assert imdb_title_url("") == ""


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None
