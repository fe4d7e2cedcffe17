from auth import generate_token, hash_password, read_token, verify_password
from config import get_settings


def test_password_hash_round_trip() -> None:
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_tampered_token_is_rejected() -> None:
    token = generate_token(7)
    assert read_token(token) == 7
    assert read_token(token[:-2] + ("A" if token[-1] != "A" else "B") * 2) is None
    assert read_token("") is None


def test_token_signed_with_other_secret_is_rejected(monkeypatch) -> None:
    token = generate_token(7)
    monkeypatch.setenv("LEDGER_TOKEN_SECRET", "another-secret")
    get_settings.cache_clear()
    try:
        assert read_token(token) is None
    finally:
        monkeypatch.undo()
        get_settings.cache_clear()
    assert read_token(token) == 7
