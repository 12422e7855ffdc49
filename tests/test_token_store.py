"""
Token storage falls back to a local file unless Upstash is explicitly enabled.
"""

from study_copilot.token_store import load_token, save_token


def test_local_token_roundtrip(tmp_path, monkeypatch):
    path = tmp_path / "token.json"
    monkeypatch.setenv("GOOGLE_TOKEN_PATH", str(path))
    monkeypatch.delenv("UPSTASH_ENABLED", raising=False)

    assert load_token() is None
    save_token('{"token": "abc"}')
    assert path.read_text(encoding="utf-8") == '{"token": "abc"}'
    assert load_token() == '{"token": "abc"}'


def test_upstash_without_credentials_uses_file(tmp_path, monkeypatch):
    path = tmp_path / "token.json"
    monkeypatch.setenv("GOOGLE_TOKEN_PATH", str(path))
    monkeypatch.setenv("UPSTASH_ENABLED", "1")
    monkeypatch.delenv("UPSTASH_REDIS_REST_URL", raising=False)
    monkeypatch.delenv("UPSTASH_REDIS_REST_TOKEN", raising=False)

    save_token("{}")
    assert path.exists()
