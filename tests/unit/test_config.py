from snapshot_tracker.config import Settings, get_settings


def test_defaults():
    settings = Settings()

    assert settings.DEFAULT_PAGE_LIMIT == 25
    assert settings.RECALC_CONCURRENCY_POLICY == "reject"
    assert settings.RECALC_MAX_POLL_ATTEMPTS == 40


def test_environment_uses_prefix(monkeypatch):
    monkeypatch.setenv("SNAPSHOT_API_BASE_URL", "https://portfolio.internal")
    monkeypatch.setenv("SNAPSHOT_RECALC_MAX_POLL_ATTEMPTS", "7")

    settings = get_settings()

    assert settings.API_BASE_URL == "https://portfolio.internal"
    assert settings.RECALC_MAX_POLL_ATTEMPTS == 7


def test_get_settings_builds_fresh_objects():
    first = get_settings(ACCOUNT_ID="acct-1")
    second = get_settings()

    assert first is not second
    assert first.ACCOUNT_ID == "acct-1"
